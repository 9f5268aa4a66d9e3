"""Client for the portal's keyword-search JSON endpoint."""

import json
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..errors import DecodingError, HttpError, InvalidURLError, NoResultsError
from ..models.patent import Patent
from ..utils.html_extractor import clean_html
from ..utils.observability import trace_span
from ..utils.transport import PortalTransport

logger = structlog.get_logger(__name__)

# Positions of the fields inside a result row.
ROW_ID = 0
ROW_CASE_NUMBER = 1
ROW_TITLE = 2
ROW_DESCRIPTION = 3
ROW_REFERENCE_NUMBER = 4
ROW_CATEGORY = 5
ROW_CENTER = 9
ROW_IMAGE_URL = 10
ROW_SCORE = 12


class SearchResponse(BaseModel):
    """Raw search response as sent by the portal."""
    results: List[Union[List[Any], Dict[str, Any]]] = []
    count: Optional[int] = None
    total: Optional[int] = None
    perpage: Optional[int] = None
    page: Optional[int] = None

    def to_patents(self) -> List[Patent]:
        """Map result rows to patents, dropping rows without identifiers."""
        patents = []
        for row in self.results:
            patent = _row_to_patent(row)
            if patent is None:
                logger.warning("Dropping search result without identifier", row=str(row)[:200])
                continue
            patents.append(patent)
        return patents


def _cell(row: List[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _score(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _row_to_patent(row: Union[List[Any], Dict[str, Any]]) -> Optional[Patent]:
    if isinstance(row, dict):
        fields = {
            "id": str(row.get("id") or "").strip(),
            "case_number": str(row.get("case_number") or row.get("caseNumber") or "").strip(),
            "title": str(row.get("title") or ""),
            "description": str(row.get("description") or ""),
            "reference_number": str(row.get("reference_number") or ""),
            "category": str(row.get("category") or ""),
            "center": str(row.get("center") or ""),
            "image_url": _optional_text(row.get("image_url") or row.get("image")),
            "relevance_score": _score(row.get("score")),
        }
    else:
        fields = {
            "id": _cell(row, ROW_ID),
            "case_number": _cell(row, ROW_CASE_NUMBER),
            "title": _cell(row, ROW_TITLE),
            "description": _cell(row, ROW_DESCRIPTION),
            "reference_number": _cell(row, ROW_REFERENCE_NUMBER),
            "category": _cell(row, ROW_CATEGORY),
            "center": _cell(row, ROW_CENTER),
            "image_url": _cell(row, ROW_IMAGE_URL) or None,
            "relevance_score": _score(row[ROW_SCORE]) if len(row) > ROW_SCORE else None,
        }

    if not fields["id"] or not fields["case_number"]:
        return None

    fields["title"] = clean_html(fields["title"]) or fields["case_number"]
    fields["description"] = clean_html(fields["description"])
    fields["category"] = clean_html(fields["category"])
    return Patent(**fields)


class SearchClient:
    """Keyword search against the portal's JSON API."""

    def __init__(self, transport: PortalTransport, settings: Optional[Settings] = None):
        self.transport = transport
        self.settings = settings or transport.settings

    def build_url(self, query: str, page: int) -> httpx.URL:
        """Build the search URL for a trimmed query."""
        encoded = quote(query, safe="")
        try:
            return httpx.URL(f"{self.settings.api_base_url}/patent/{encoded}", params={"page": page})
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            raise InvalidURLError() from e

    @trace_span("portal.search")
    async def search(self, query: str, page: int = 1) -> List[Patent]:
        """Search patents by keyword.

        Transport errors propagate unchanged; the caller decides on retries.
        """
        trimmed = (query or "").strip()
        if not trimmed:
            raise NoResultsError()

        url = self.build_url(trimmed, page)
        response = await self.transport.get(url, endpoint="search")

        if response.status_code != 200:
            logger.warning("Search returned error status", query=trimmed, status=response.status_code)
            raise HttpError(response.status_code)

        try:
            payload = SearchResponse.model_validate(json.loads(response.content))
            patents = payload.to_patents()
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Failed to decode search response", query=trimmed, error=str(e))
            raise DecodingError(e) from e

        logger.debug("Search completed", query=trimmed, page=page, results=len(patents))
        return patents

    @trace_span("portal.get_by_id")
    async def get_by_id(self, identifier: str) -> Optional[Patent]:
        """Look a patent up by its id or case number."""
        patents = await self.search(identifier)
        wanted = identifier.strip()
        for patent in patents:
            if patent.id == wanted or patent.case_number == wanted:
                return patent
        return None
