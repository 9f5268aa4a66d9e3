"""Worker answering portal and problem-matching requests over NATS."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..base import BaseWorker
from ...config import Settings
from ...errors import AIServiceError, PortalError
from ...models.patent import PatentCategory
from ...portal.service import TechTransferPortal
from ...utils.error_tracking import capture_exception, setup_sentry
from ...utils.observability import setup_logging, setup_tracing

logger = structlog.get_logger(__name__)

SUBJECT_SEARCH = "patent.search"
SUBJECT_BROWSE = "patent.browse"
SUBJECT_FEATURED = "patent.featured"
SUBJECT_GET = "patent.get"
SUBJECT_DETAIL = "patent.detail"
SUBJECT_SOLVE = "patent.solve"


class SearchRequest(BaseModel):
    query: str
    page: int = Field(default=1, ge=1)


class BrowseRequest(BaseModel):
    category: PatentCategory = PatentCategory.ALL
    page: int = Field(default=1, ge=1)


class GetPatentRequest(BaseModel):
    identifier: str


class DetailRequest(BaseModel):
    case_number: str


class SolveRequest(BaseModel):
    problem: str


class PortalWorker(BaseWorker):
    """Exposes the portal operations as NATS request/reply subjects."""

    def __init__(self, settings: Optional[Settings] = None,
                 portal: Optional[TechTransferPortal] = None):
        self.settings = settings or Settings.from_env()
        super().__init__(self.settings.nats_url)
        self.portal = portal or TechTransferPortal(self.settings)

        self.handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            SUBJECT_SEARCH: self.handle_search,
            SUBJECT_BROWSE: self.handle_browse,
            SUBJECT_FEATURED: self.handle_featured,
            SUBJECT_GET: self.handle_get,
            SUBJECT_DETAIL: self.handle_detail,
            SUBJECT_SOLVE: self.handle_solve,
        }

        logger.info("PortalWorker initialized")

    async def start(self):
        """Start the worker and subscribe to every portal subject."""
        await super().start()
        for subject in self.handlers:
            await self.subscribe(subject, self.handle_request)
        logger.info("PortalWorker started and listening for requests")

    async def stop(self):
        """Stop the worker and release the portal transport."""
        await super().stop()
        await self.portal.aclose()

    async def handle_search(self, payload: Dict[str, Any]):
        request = SearchRequest.model_validate(payload)
        patents = await self.portal.search(request.query, page=request.page)
        return [patent.model_dump() for patent in patents]

    async def handle_browse(self, payload: Dict[str, Any]):
        request = BrowseRequest.model_validate(payload)
        patents = await self.portal.browse(request.category, page=request.page)
        return [patent.model_dump() for patent in patents]

    async def handle_featured(self, payload: Dict[str, Any]):
        patents = await self.portal.featured()
        return [patent.model_dump() for patent in patents]

    async def handle_get(self, payload: Dict[str, Any]):
        request = GetPatentRequest.model_validate(payload)
        patent = await self.portal.get_by_id(request.identifier)
        return patent.model_dump() if patent else None

    async def handle_detail(self, payload: Dict[str, Any]):
        request = DetailRequest.model_validate(payload)
        detail = await self.portal.fetch_detail(request.case_number)
        return detail.model_dump()

    async def handle_solve(self, payload: Dict[str, Any]):
        request = SolveRequest.model_validate(payload)
        result = await self.portal.solve(request.problem)
        return result.model_dump()

    async def process_message(self, subject: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Run the handler for a subject and wrap the outcome in a reply envelope."""
        handler = self.handlers.get(subject)
        if handler is None:
            return {"status": "error", "error_type": "UnknownSubject",
                    "error": f"No handler for subject {subject}"}

        try:
            data = await handler(payload)
            return {"status": "ok", "data": data}

        except ValidationError as e:
            logger.warning("Invalid request", subject=subject, error=str(e))
            return {"status": "error", "error_type": "InvalidRequest", "error": str(e)}

        except PortalError as e:
            logger.warning("Portal request failed", subject=subject, error=e.description)
            return {"status": "error", "error_type": e.__class__.__name__, "error": e.description}

        except AIServiceError as e:
            logger.warning("AI request failed", subject=subject, error=str(e))
            return {"status": "error", "error_type": e.__class__.__name__, "error": str(e)}

        except Exception as e:
            logger.error("Unexpected error handling request", subject=subject, error=str(e))
            capture_exception(e, {"subject": subject})
            return {"status": "error", "error_type": e.__class__.__name__, "error": str(e)}

    async def handle_request(self, msg):
        """Decode a NATS message, process it and reply when a reply subject is set."""
        try:
            payload = json.loads(msg.data.decode()) if msg.data else {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            reply = {"status": "error", "error_type": "InvalidRequest", "error": str(e)}
        else:
            if not isinstance(payload, dict):
                reply = {"status": "error", "error_type": "InvalidRequest",
                         "error": "Request body must be a JSON object"}
            else:
                logger.info("Processing request", subject=msg.subject)
                reply = await self.process_message(msg.subject, payload)

        if msg.reply:
            await msg.respond(json.dumps(reply, default=str).encode())
        else:
            logger.debug("Request had no reply subject", subject=msg.subject)


async def main():
    """Main entry point for the portal worker."""
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    setup_sentry(settings.sentry_dsn, environment=settings.environment)
    setup_tracing("techtransfer-portal-worker")

    worker = PortalWorker(settings)
    await worker.run()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
