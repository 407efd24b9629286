"""
XForm parser.

Turns raw XForm text into a ParsedForm: the form's identity (id, version,
title), its instance model tree and a canonical form of the document used
for identical-content comparison.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple, Union
import xml.etree.ElementTree as ET

from ..core.exceptions import FormParseError
from .model import Control, ControlType, DataType, FormModel


logger = logging.getLogger(__name__)

JR_NAMESPACE = "http://openrosa.org/javarosa"

_CONTROL_TAGS = {control.value: control for control in ControlType}
_INSTANCE_REF = re.compile(r"instance\(\s*'([^']+)'\s*\)")

NodePath = Tuple[str, ...]


def local_name(tag: str) -> str:
    """Strip the {namespace} prefix from an ElementTree tag."""
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _children(element: ET.Element, name: str) -> Iterable[ET.Element]:
    return (child for child in element if local_name(child.tag) == name)


def _first(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    return next(_children(element, name), None)


def _descendant(element: ET.Element, name: str) -> Optional[ET.Element]:
    return next((node for node in element.iter() if local_name(node.tag) == name), None)


def _split_path(ref: str) -> NodePath:
    # Drop predicates like [position()=1]; they never appear in bind paths we key on
    ref = re.sub(r"\[[^\]]*\]", "", ref)
    return tuple(part for part in ref.strip().split("/") if part and part != ".")


def _resolve(ref: Optional[str], context: NodePath) -> Optional[NodePath]:
    if not ref:
        return None
    if ref.startswith("/"):
        return _split_path(ref)
    resolved = list(context)
    for part in _split_path(ref):
        if part == "..":
            if resolved:
                resolved.pop()
        else:
            resolved.append(part)
    return tuple(resolved)


@dataclass
class ParsedForm:
    """
    A parsed XForm.

    Attributes:
        form_id: The id attribute of the instance root
        version: The version attribute of the instance root, if any
        title: The form title (falls back to the form id)
        model: Root of the instance model tree
        canonical_xml: C14N rendering of the document, whitespace stripped
        encrypted: True if the form declares an RSA public key for submissions
        path: File the form was read from, if any
    """
    form_id: str
    version: Optional[str]
    title: str
    model: FormModel
    canonical_xml: str
    encrypted: bool = False
    path: Optional[Path] = None

    def field_signature(self) -> Dict[str, Tuple[DataType, bool]]:
        """Map of field FQN to (data type, repeatable) for schema comparison."""
        return {
            node.fqn(): (node.data_type, node.repeatable)
            for node in self.model.flatten()
        }


def parse_form(xml_text: Union[str, bytes], path: Optional[Path] = None) -> ParsedForm:
    """
    Parse XForm text.

    Args:
        xml_text: The XForm document. Bytes are decoded with the encoding
            the document declares (UTF-8 if none)
        path: Optional source file, recorded on the result and in errors

    Returns:
        ParsedForm

    Raises:
        FormParseError: If the document is malformed or lacks an identified instance
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise FormParseError(f"Form is not well-formed XML: {e}", path=path) from e

    model_element = _descendant(root, "model")
    if model_element is None:
        raise FormParseError("Form has no model element", path=path)

    instances = list(_children(model_element, "instance"))
    primary = next((inst for inst in instances if inst.get("id") is None), None)
    if primary is None:
        raise FormParseError("Form has no primary instance", path=path)
    instance_root = next(iter(primary), None)
    if instance_root is None:
        raise FormParseError("Primary instance is empty", path=path)

    form_id = instance_root.get("id")
    if not form_id:
        raise FormParseError("Instance root has no form id", path=path)
    version = instance_root.get("version") or None

    title_element = _descendant(root, "title")
    title = (title_element.text or "").strip() if title_element is not None else ""

    bind_types = {}
    for bind in _children(model_element, "bind"):
        nodeset = _resolve(bind.get("nodeset"), ())
        if nodeset:
            bind_types[nodeset] = bind.get("type")

    secondary = {inst.get("id"): inst for inst in instances if inst.get("id") is not None}
    controls: Dict[NodePath, Control] = {}
    repeats: Set[NodePath] = set()
    body = _descendant(root, "body")
    if body is not None:
        _collect_controls(body, (), controls, repeats, secondary)

    model = _build_model(instance_root, None, bind_types, controls, repeats)
    submission = _first(model_element, "submission")
    encrypted = submission is not None and bool(submission.get("base64RsaPublicKey"))

    try:
        canonical_xml = ET.canonicalize(xml_text, strip_text=True)
    except ET.ParseError as e:
        raise FormParseError(f"Form cannot be canonicalized: {e}", path=path) from e

    return ParsedForm(
        form_id=form_id,
        version=version,
        title=title or form_id,
        model=model,
        canonical_xml=canonical_xml,
        encrypted=encrypted,
        path=path,
    )


def read_form(path: Path) -> ParsedForm:
    """
    Read and parse an XForm file.

    Raises:
        FileNotFoundError/OSError: If the file cannot be read
        FormParseError: If the content is not a valid form
    """
    path = Path(path)
    with open(path, "rb") as f:
        xml_bytes = f.read()
    return parse_form(xml_bytes, path=path)


def _build_model(
    element: ET.Element,
    parent: Optional[FormModel],
    bind_types: Dict[NodePath, Optional[str]],
    controls: Dict[NodePath, Control],
    repeats: Set[NodePath],
    path: NodePath = (),
) -> FormModel:
    name = local_name(element.tag)
    path = path + (name,)
    has_children = len(element) > 0

    if has_children or path in repeats:
        data_type = DataType.NULL
    else:
        data_type = DataType.from_bind_type(bind_types.get(path))

    node = FormModel(
        name=name,
        data_type=data_type,
        repeatable=path in repeats or element.get(f"{{{JR_NAMESPACE}}}template") is not None,
        control=controls.get(path),
    )
    if parent is not None:
        parent.add_child(node)

    for child in element:
        if isinstance(child.tag, str):
            _build_model(child, node, bind_types, controls, repeats, path)
    return node


def _collect_controls(
    element: ET.Element,
    context: NodePath,
    controls: Dict[NodePath, Control],
    repeats: Set[NodePath],
    secondary: Dict[str, ET.Element],
) -> None:
    for child in element:
        tag = local_name(child.tag)
        if tag in ("group", "repeat"):
            ref = _resolve(child.get("nodeset") or child.get("ref"), context)
            if tag == "repeat" and ref:
                repeats.add(ref)
            _collect_controls(child, ref or context, controls, repeats, secondary)
        elif tag in _CONTROL_TAGS:
            ref = _resolve(child.get("ref") or child.get("bind"), context)
            if ref:
                controls[ref] = Control(
                    control_type=_CONTROL_TAGS[tag],
                    appearance=child.get("appearance"),
                    choices=_choices(child, secondary),
                )


def _choices(control: ET.Element, secondary: Dict[str, ET.Element]) -> list:
    itemset = _first(control, "itemset")
    if itemset is not None:
        return _itemset_choices(itemset, secondary)
    values = []
    for item in _children(control, "item"):
        value = _first(item, "value")
        if value is not None and value.text:
            values.append(value.text.strip())
    return values


def _itemset_choices(itemset: ET.Element, secondary: Dict[str, ET.Element]) -> list:
    match = _INSTANCE_REF.search(itemset.get("nodeset") or "")
    value_ref = _first(itemset, "value")
    if match is None or value_ref is None:
        return []
    instance = secondary.get(match.group(1))
    if instance is None:
        return []
    value_name = (value_ref.get("ref") or "").strip("./")
    item_path = _split_path(_INSTANCE_REF.sub("", itemset.get("nodeset")))
    # item_path is (<root>, <item>); items live one level under the instance root
    item_name = item_path[-1] if item_path else "item"
    values = []
    for root in instance:
        for item in _children(root, item_name):
            value = _first(item, value_name)
            if value is not None and value.text:
                values.append(value.text.strip())
    return values
