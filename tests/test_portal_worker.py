import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import make_patent
from techtransfer.config import Settings
from techtransfer.errors import AICredentialError, HttpError, NoResultsError
from techtransfer.models.patent import MatchResult, PatentCategory, PatentDetail, ProblemSolution
from techtransfer.portal.service import TechTransferPortal
from techtransfer.workers.portal_worker.worker import (
    SUBJECT_BROWSE,
    SUBJECT_DETAIL,
    SUBJECT_FEATURED,
    SUBJECT_GET,
    SUBJECT_SEARCH,
    SUBJECT_SOLVE,
    PortalWorker,
)


def nats_message(subject: str, body, reply: str = "_INBOX.1"):
    data = body if isinstance(body, bytes) else json.dumps(body).encode()
    return SimpleNamespace(subject=subject, data=data, reply=reply, respond=AsyncMock())


class TestPortalWorker:
    """Test request handling of the portal worker."""

    @pytest.fixture
    def mock_portal(self):
        portal = Mock(spec=TechTransferPortal)
        portal.search = AsyncMock(return_value=[make_patent("1", "A-1", "Heat Pipe")])
        portal.browse = AsyncMock(return_value=[make_patent("2", "A-2", "Lens", category="Optics")])
        portal.featured = AsyncMock(return_value=[])
        portal.get_by_id = AsyncMock(return_value=None)
        portal.fetch_detail = AsyncMock(return_value=PatentDetail(id="A-1", case_number="A-1", title="T"))
        portal.solve = AsyncMock(return_value=MatchResult(
            solution=ProblemSolution(problem="p", summary="none"), candidates=[]
        ))
        portal.aclose = AsyncMock()
        return portal

    @pytest.fixture
    def worker(self, mock_portal):
        return PortalWorker(Settings(), portal=mock_portal)

    def test_subscribes_to_every_operation(self, worker):
        assert set(worker.handlers) == {
            SUBJECT_SEARCH, SUBJECT_BROWSE, SUBJECT_FEATURED, SUBJECT_GET, SUBJECT_DETAIL, SUBJECT_SOLVE,
        }

    @pytest.mark.asyncio
    async def test_search_reply(self, worker, mock_portal):
        reply = await worker.process_message(SUBJECT_SEARCH, {"query": "heat", "page": 2})

        assert reply["status"] == "ok"
        assert reply["data"][0]["title"] == "Heat Pipe"
        mock_portal.search.assert_awaited_once_with("heat", page=2)

    @pytest.mark.asyncio
    async def test_browse_parses_category(self, worker, mock_portal):
        reply = await worker.process_message(SUBJECT_BROWSE, {"category": "Optics"})

        assert reply["status"] == "ok"
        mock_portal.browse.assert_awaited_once_with(PatentCategory.OPTICS, page=1)

    @pytest.mark.asyncio
    async def test_get_missing_patent(self, worker):
        reply = await worker.process_message(SUBJECT_GET, {"identifier": "nope"})
        assert reply == {"status": "ok", "data": None}

    @pytest.mark.asyncio
    async def test_detail_and_solve(self, worker):
        detail = await worker.process_message(SUBJECT_DETAIL, {"case_number": "A-1"})
        solved = await worker.process_message(SUBJECT_SOLVE, {"problem": "p"})

        assert detail["data"]["case_number"] == "A-1"
        assert solved["data"]["solution"]["summary"] == "none"
        assert solved["data"]["candidates"] == []

    @pytest.mark.asyncio
    async def test_portal_errors_become_error_replies(self, worker, mock_portal):
        mock_portal.search.side_effect = HttpError(502)
        reply = await worker.process_message(SUBJECT_SEARCH, {"query": "x"})
        assert reply == {"status": "error", "error_type": "HttpError", "error": "Server error: 502"}

        mock_portal.search.side_effect = NoResultsError()
        reply = await worker.process_message(SUBJECT_SEARCH, {"query": " "})
        assert reply["error"] == "No patents found"

        mock_portal.solve.side_effect = AICredentialError()
        reply = await worker.process_message(SUBJECT_SOLVE, {"problem": "p"})
        assert reply["error_type"] == "AICredentialError"

    @pytest.mark.asyncio
    async def test_invalid_request(self, worker):
        reply = await worker.process_message(SUBJECT_BROWSE, {"category": "Not A Category"})
        assert reply["status"] == "error"
        assert reply["error_type"] == "InvalidRequest"

    @pytest.mark.asyncio
    async def test_handle_request_responds(self, worker):
        msg = nats_message(SUBJECT_SEARCH, {"query": "heat"})

        await worker.handle_request(msg)

        body = json.loads(msg.respond.await_args.args[0].decode())
        assert body["status"] == "ok"
        assert body["data"][0]["id"] == "1"

    @pytest.mark.asyncio
    async def test_handle_request_rejects_bad_json(self, worker, mock_portal):
        msg = nats_message(SUBJECT_SEARCH, b"{not json")

        await worker.handle_request(msg)

        body = json.loads(msg.respond.await_args.args[0].decode())
        assert body["error_type"] == "InvalidRequest"
        mock_portal.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_subscribes_request_handler(self, worker):
        nats_client = Mock()
        nats_client.subscribe = AsyncMock(return_value=Mock(unsubscribe=AsyncMock()))
        nats_client.close = AsyncMock()

        with patch("techtransfer.workers.base.nats.connect", AsyncMock(return_value=nats_client)):
            await worker.start()

        subjects = [call.args[0] for call in nats_client.subscribe.await_args_list]
        assert subjects == list(worker.handlers)
        assert all(call.kwargs["cb"] == worker.handle_request
                   for call in nats_client.subscribe.await_args_list)

        await worker.stop()
        assert worker.subscriptions == []
        nats_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_closes_portal(self, worker, mock_portal):
        await worker.stop()
        mock_portal.aclose.assert_awaited_once()
