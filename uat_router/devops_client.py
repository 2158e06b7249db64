"""
Azure DevOps client for the UAT Routing Service.

Responsible for retrieving data from the work item tracker:
- Work item fields and relations
- Work item discussion comments
"""

import logging
from datetime import datetime
from typing import Any, Optional, Union
from urllib.parse import quote

import httpx

from .config import DevOpsConfig
from .errors import NotFoundError, UpstreamError
from .extraction import clean_html, extract_ticket_record
from .models import NO_COMMENTS, TicketRecord


logger = logging.getLogger(__name__)


# Comment authors that are automation accounts, not people
AUTOMATION_AUTHORS = frozenset({
    "EDOT Service",
    "DAI CSU Automation Flow",
    "TechRoB-Automation",
})

NO_COMMENTS_PROVIDED = "No comments were provided for this action."

COMMENTS_API_VERSION = "7.1-preview.4"


def _format_comment_date(raw: Optional[str]) -> str:
    """Render an ISO timestamp as ``YYYY-MM-DD HH:MM:SS``."""
    if not raw:
        return "unknown date"
    raw = str(raw)
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return raw


def format_comments(comments: list[dict[str, Any]]) -> str:
    """
    Format discussion comments for the prompt.

    Automation authors are skipped; each remaining comment is rendered as
    ``Comment by <author> on <date>:`` followed by its plain text.

    Args:
        comments: ``comments`` list from the tracker comments API.

    Returns:
        Formatted comments, or a placeholder when nothing is left.
    """
    parts = []
    for comment in comments:
        if not isinstance(comment, dict):
            continue
        created_by = comment.get("createdBy")
        author = created_by.get("displayName") if isinstance(created_by, dict) else created_by
        author = str(author) if author else "Unknown"
        if author in AUTOMATION_AUTHORS:
            continue
        date = _format_comment_date(comment.get("createdDate"))
        text = clean_html(str(comment.get("text") or ""))
        parts.append(f"Comment by {author} on {date}:\n{text}")

    return "\n\n".join(parts) or NO_COMMENTS_PROVIDED


class DevOpsClient:
    """
    Client for the Azure DevOps work item tracking REST API.

    Authenticates with a personal access token. The underlying HTTP client
    is created once and shared by every request the service handles.
    """

    def __init__(self, config: DevOpsConfig, http_client: Optional[httpx.Client] = None):
        """
        Initialize the DevOps client.

        Args:
            config: Tracker configuration with organization URL and PAT.
            http_client: Optional preconfigured client (used by tests).
        """
        self._config = config
        self._base_url = config.org_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            auth=("", config.pat),
            timeout=config.request_timeout,
            headers={"Accept": "application/json"},
        )

    def __enter__(self) -> "DevOpsClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def _project_url(self, project: Optional[str]) -> str:
        if project:
            return f"{self._base_url}/{quote(project, safe='')}"
        return self._base_url

    def get_work_item(self, work_item_id: Union[str, int], project: Optional[str] = None) -> TicketRecord:
        """
        Fetch a work item with all fields and relations.

        Args:
            work_item_id: Numeric work item id.
            project: Optional project name to scope the lookup.

        Returns:
            Normalized TicketRecord.

        Raises:
            NotFoundError: If the id is not numeric or the item does not exist.
            UpstreamError: If the tracker request fails.
        """
        item_id = str(work_item_id).strip()
        if not item_id.isdigit():
            raise NotFoundError(f"Work item {work_item_id} not found: id must be numeric")

        url = f"{self._project_url(project)}/_apis/wit/workitems/{item_id}"
        logger.info(f"Fetching work item {item_id} from Azure DevOps")

        try:
            response = self._client.get(
                url,
                params={"$expand": "All", "api-version": self._config.api_version},
            )
            if response.status_code == 404:
                raise NotFoundError(f"Work item {item_id} not found")
            response.raise_for_status()
            data = response.json()

        except NotFoundError:
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching work item {item_id}: {e}")
            raise UpstreamError(
                f"Failed to fetch work item {item_id}: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Request error fetching work item {item_id}: {e}")
            raise UpstreamError(f"Failed to fetch work item {item_id}: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON for work item {item_id}: {e}")
            raise UpstreamError(f"Failed to fetch work item {item_id}: invalid JSON") from e

        if not data or not isinstance(data, dict):
            raise NotFoundError(f"Work item {item_id} not found")

        record = extract_ticket_record(data)
        logger.info(f"Fetched work item {record.id}: {record.title!r}")
        return record

    def get_work_item_comments(self, work_item_id: Union[str, int], project: str) -> str:
        """
        Fetch and format the discussion comments of a work item.

        Best effort: any failure is logged and reported as no comments.

        Args:
            work_item_id: Numeric work item id.
            project: Project name (required by the comments API).

        Returns:
            Formatted comments text.
        """
        item_id = str(work_item_id).strip()
        url = f"{self._project_url(project)}/_apis/wit/workItems/{item_id}/comments"

        try:
            response = self._client.get(url, params={"api-version": COMMENTS_API_VERSION})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch comments for work item {item_id}: {e}")
            return NO_COMMENTS

        comments = data.get("comments") if isinstance(data, dict) else None
        if not comments or not isinstance(comments, list):
            return NO_COMMENTS_PROVIDED

        formatted = format_comments(comments)
        logger.debug(f"Fetched {len(comments)} comments for work item {item_id}")
        return formatted
