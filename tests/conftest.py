import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from techtransfer.config import Settings
from techtransfer.models.patent import Patent
from techtransfer.utils.transport import PortalTransport


def make_row(patent_id: str, case_number: str, title: str, category: str = "Sensors",
             description: str = "A technology.") -> List:
    """Build a search result row in the portal's positional layout."""
    return [
        patent_id, case_number, title, description, f"{case_number}-REF", category,
        "", "", "", "GRC", f"https://technology.nasa.gov/t2media/tops/img/{case_number}/front.jpg",
        "", 0.5,
    ]


def make_patent(patent_id: str, case_number: Optional[str] = None, title: Optional[str] = None,
                category: str = "Sensors") -> Patent:
    return Patent(
        id=patent_id,
        case_number=case_number or f"CASE-{patent_id}",
        title=title or f"Patent {patent_id}",
        category=category,
    )


def search_payload(rows: List) -> bytes:
    return json.dumps({"results": rows, "count": len(rows), "total": len(rows),
                       "perpage": 10, "page": 0}).encode()


def query_of(request: httpx.Request) -> str:
    """The decoded search term of a search request."""
    return request.url.path.rsplit("/", 1)[-1]


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def make_transport(settings) -> Callable:
    """Create a PortalTransport whose requests are answered by a handler."""
    def factory(handler: Callable[[httpx.Request], httpx.Response],
                transport_settings: Optional[Settings] = None) -> PortalTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PortalTransport(transport_settings or settings, client=client)
    return factory


@pytest.fixture
def search_routes(make_transport) -> Callable:
    """Transport answering searches from a query -> rows table; missing queries return 500."""
    def factory(routes: Dict[str, List], transport_settings: Optional[Settings] = None):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            query = query_of(request)
            requests.append(query)
            if query not in routes:
                return httpx.Response(500)
            return httpx.Response(200, content=search_payload(routes[query]))

        transport = make_transport(handler, transport_settings)
        transport.requests = requests
        return transport
    return factory
