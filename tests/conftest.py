"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


# ============================================================================
# XForm builders
# ============================================================================

DEFAULT_FIELDS = (("name", "string"), ("age", "int"))


def make_xform(
    form_id: str = "household",
    version: Optional[str] = "1",
    title: str = "Household Survey",
    fields: Sequence[Tuple[str, str]] = DEFAULT_FIELDS,
    hint: str = "",
) -> str:
    """
    Build a minimal XForm.

    Args:
        form_id: id attribute of the instance root
        version: version attribute (None to omit it)
        title: h:title text
        fields: (name, bind type) pairs
        hint: Extra label text; changes content without changing the schema
    """
    version_attr = f' version="{version}"' if version is not None else ""
    instance = "".join(f"<{name}/>" for name, _ in fields)
    binds = "".join(
        f'<bind nodeset="/data/{name}" type="{bind_type}"/>' for name, bind_type in fields
    )
    controls = "".join(
        f'<input ref="/data/{name}"><label>{name}{hint}</label></input>' for name, _ in fields
    )
    return (
        '<?xml version="1.0"?>\n'
        '<h:html xmlns="http://www.w3.org/2002/xforms" xmlns:h="http://www.w3.org/1999/xhtml">\n'
        "  <h:head>\n"
        f"    <h:title>{title}</h:title>\n"
        "    <model>\n"
        f'      <instance><data id="{form_id}"{version_attr}>{instance}'
        "<meta><instanceID/></meta></data></instance>\n"
        f"      {binds}\n"
        "    </model>\n"
        "  </h:head>\n"
        f"  <h:body>{controls}</h:body>\n"
        "</h:html>\n"
    )


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def xform():
    """Fixture providing the XForm builder."""
    return make_xform


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Fixture providing an empty storage root."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def downloads(tmp_path: Path) -> Path:
    """Fixture providing a directory for downloaded candidate forms."""
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def write_form(downloads: Path):
    """Fixture writing XForm text to a fresh candidate file."""
    counter = {"n": 0}

    def _write(xml_text: str, name: Optional[str] = None) -> Path:
        counter["n"] += 1
        path = downloads / (name or f"candidate-{counter['n']}.xml")
        path.write_text(xml_text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def events() -> List:
    """Fixture collecting emitted events; pass `events.append` as the callback."""
    return []
