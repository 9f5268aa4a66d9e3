import json
from unittest.mock import patch

import httpx
import pytest

from conftest import make_row, query_of, search_payload
from techtransfer.errors import DecodingError, HttpError, NoResultsError
from techtransfer.models.patent import Patent
from techtransfer.portal.search_client import SearchClient, SearchResponse


class TestSearchClient:
    """Test keyword search against a mocked portal."""

    @pytest.mark.asyncio
    async def test_search_maps_rows(self, make_transport):
        """Test result rows become patents in upstream order."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            rows = [
                make_row("id-1", "LEW-TOPS-1", "Heat <span class=\"highlight\">Pipe</span>",
                         category="Mechanical and Fluid Systems"),
                make_row("id-2", "ARC-TOPS-2", "Thermal &amp; Vacuum Sensor"),
            ]
            return httpx.Response(200, content=search_payload(rows))

        client = SearchClient(make_transport(handler))
        patents = await client.search("heat pipe", page=2)

        assert [patent.id for patent in patents] == ["id-1", "id-2"]
        assert patents[0].title == "Heat Pipe"
        assert patents[0].category == "Mechanical and Fluid Systems"
        assert patents[0].center == "GRC"
        assert patents[0].relevance_score == 0.5
        assert patents[1].title == "Thermal & Vacuum Sensor"

        assert seen["url"].params["page"] == "2"
        assert query_of(httpx.Request("GET", seen["url"])) == "heat pipe"
        assert b"/api/api/patent/heat%20pipe" in seen["url"].raw_path

    @pytest.mark.asyncio
    async def test_search_results_have_identifiers(self, make_transport):
        """Test rows missing an id or case number are dropped."""
        def handler(request):
            rows = [
                make_row("", "NO-ID", "Missing id"),
                make_row("id-3", "", "Missing case"),
                make_row("id-4", "KSC-TOPS-4", "Complete"),
            ]
            return httpx.Response(200, content=search_payload(rows))

        patents = await SearchClient(make_transport(handler)).search("anything")
        assert len(patents) == 1
        assert all(patent.id and patent.case_number for patent in patents)

    @pytest.mark.asyncio
    async def test_search_accepts_object_rows(self, make_transport):
        def handler(request):
            body = b'{"results": [{"id": "x1", "caseNumber": "MSC-TOPS-9", "title": "Suit", "category": "Aerospace"}]}'
            return httpx.Response(200, content=body)

        patents = await SearchClient(make_transport(handler)).search("suit")
        assert patents[0].case_number == "MSC-TOPS-9"
        assert patents[0].category == "Aerospace"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image", [5, ["a"], {"src": "a.png"}, "  "])
    async def test_object_rows_ignore_non_text_images(self, make_transport, image):
        """Test an unusable image value does not break the row."""
        def handler(request):
            row = {"id": "x1", "caseNumber": "A-1", "title": "T", "image": image}
            return httpx.Response(200, content=json.dumps({"results": [row]}).encode())

        patents = await SearchClient(make_transport(handler)).search("suit")

        assert [patent.case_number for patent in patents] == ["A-1"]
        assert patents[0].image_url is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    async def test_blank_query_raises_no_results(self, make_transport, query):
        """Test blank queries fail before any request is made."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, content=search_payload([]))

        with pytest.raises(NoResultsError) as exc_info:
            await SearchClient(make_transport(handler)).search(query)

        assert calls == []
        assert exc_info.value.description == "No patents found"

    @pytest.mark.asyncio
    async def test_non_200_raises_http_error(self, make_transport):
        client = SearchClient(make_transport(lambda request: httpx.Response(503)))

        with pytest.raises(HttpError) as exc_info:
            await client.search("robotics")

        assert exc_info.value.status_code == 503
        assert exc_info.value.description == "Server error: 503"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"<html>not json</html>", b"[1, 2, 3]", b'{"results": "nope"}'])
    async def test_malformed_body_raises_decoding_error(self, make_transport, body):
        client = SearchClient(make_transport(lambda request: httpx.Response(200, content=body)))

        with pytest.raises(DecodingError) as exc_info:
            await client.search("robotics")

        assert exc_info.value.description.startswith("Failed to parse response")

    @pytest.mark.asyncio
    async def test_row_validation_failure_raises_decoding_error(self, make_transport):
        """Test a row the model rejects surfaces as a decoding error."""
        def reject(row):
            return Patent.model_validate({"id": "x1", "case_number": "A-1", "title": ["not", "text"]})

        body = json.dumps({"results": [{"id": "x1", "caseNumber": "A-1"}]}).encode()
        client = SearchClient(make_transport(lambda request: httpx.Response(200, content=body)))

        with patch("techtransfer.portal.search_client._row_to_patent", side_effect=reject):
            with pytest.raises(DecodingError):
                await client.search("suit")

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, make_transport):
        """Test timeouts are not translated by the client."""
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(httpx.ConnectTimeout):
            await SearchClient(make_transport(handler)).search("robotics")

    @pytest.mark.asyncio
    async def test_get_by_id_matches_id_or_case(self, make_transport):
        def handler(request):
            rows = [make_row("id-1", "LEW-TOPS-1", "One"), make_row("id-2", "LEW-TOPS-2", "Two")]
            return httpx.Response(200, content=search_payload(rows))

        client = SearchClient(make_transport(handler))

        assert (await client.get_by_id("LEW-TOPS-2")).id == "id-2"
        assert (await client.get_by_id("id-1")).case_number == "LEW-TOPS-1"
        assert await client.get_by_id("LEW-TOPS-99") is None

    def test_response_model_defaults(self):
        assert SearchResponse.model_validate({}).to_patents() == []
