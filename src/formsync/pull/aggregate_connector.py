"""
HTTP connector for ODK Aggregate compatible servers.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import xml.etree.ElementTree as ET

import requests
from requests.auth import HTTPDigestAuth

from ..core.exceptions import ConnectorError
from .cursor import Cursor


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "formsync/1.0"


@dataclass
class InstanceIdBatch:
    """
    One page of submission instance IDs.

    Attributes:
        instance_ids: Instance IDs in server order
        cursor: Cursor to request the next page with
    """
    instance_ids: List[str]
    cursor: Cursor

    def is_empty(self) -> bool:
        return not self.instance_ids


def parse_id_chunk(xml_text: str) -> InstanceIdBatch:
    """
    Parse an idChunk document.

    Format:
        <idChunk xmlns="http://opendatakit.org/submissions">
            <idList><id>uuid:...</id>...</idList>
            <resumptionCursor>{escaped cursor xml}</resumptionCursor>
        </idChunk>

    Raises:
        ConnectorError: If the document is malformed
        MalformedCursorError: If the embedded cursor is malformed
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ConnectorError(f"Malformed idChunk document: {e}") from e

    instance_ids = []
    cursor_text = ""
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        name = element.tag.rsplit("}", 1)[-1]
        if name == "id" and element.text and element.text.strip():
            instance_ids.append(element.text.strip())
        elif name == "resumptionCursor":
            cursor_text = element.text or ""

    return InstanceIdBatch(instance_ids=instance_ids, cursor=Cursor.parse(cursor_text))


class AggregateConnector:
    """
    Connector for the Aggregate Briefcase API.

    Supports:
    - Form definition download (formXml)
    - Paged submission instance ID listing (view/submissionList)
    - Digest authentication
    - Rate limiting
    - Retries with exponential backoff
    """

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        rate_limit_delay: float = 0.0,
        timeout: int = 30,
        max_retries: int = 3,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Aggregate connector.

        Args:
            base_url: Server base URL (e.g., 'https://aggregate.example.org')
            username: Optional username for digest authentication
            password: Optional password for digest authentication
            rate_limit_delay: Minimum seconds between requests
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per request
            user_agent: Custom User-Agent header
            session: Optional pre-built requests session
        """
        self.base_url = base_url.rstrip("/")
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.last_request_time = 0.0
        self.session = session or requests.Session()
        if username:
            self.session.auth = HTTPDigestAuth(username, password or "")

    def fetch_form_definition(self, form_id: str, dest_path: Path) -> Path:
        """
        Download a form definition to dest_path.

        Returns:
            dest_path
        """
        response = self._get("formXml", {"formId": form_id})
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        with open(dest_path, "wb") as f:
            f.write(response.content)
        logger.debug(f"Downloaded form {form_id} to {dest_path}")
        return dest_path

    def fetch_instance_id_chunk(
        self,
        form_id: str,
        cursor: Optional[Cursor] = None,
        num_entries: int = 100,
    ) -> InstanceIdBatch:
        """
        Fetch one page of instance IDs starting after cursor.
        """
        cursor = cursor or Cursor.empty()
        params = {
            "formId": form_id,
            "cursor": cursor.serialize(),
            "numEntries": num_entries,
        }
        response = self._get("view/submissionList", params)
        return parse_id_chunk(response.text)

    def _get(self, path: str, params: Dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}/{path}"
        headers = {"User-Agent": self.user_agent}

        last_error = None
        for attempt in range(self.max_retries):
            self._wait_for_rate_limit()
            try:
                response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(2 ** attempt)
                continue

            if response.status_code >= 500 and attempt < self.max_retries - 1:
                logger.warning(
                    f"Server error {response.status_code} for {url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                time.sleep(2 ** attempt)
                continue
            if response.status_code >= 400:
                raise ConnectorError(
                    f"GET {path} failed with status {response.status_code}",
                    status_code=response.status_code,
                    url=url,
                )
            return response

        raise ConnectorError(
            f"Request failed after {self.max_retries} attempts: {last_error}",
            url=url,
        )

    def _wait_for_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit_delay > 0:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - elapsed)
        self.last_request_time = time.time()

    def get_name(self) -> str:
        return self.base_url

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            self.session.close()
