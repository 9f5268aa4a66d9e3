"""Featured listing built from several topical searches."""

from typing import List, Optional

import structlog

from ..config import Settings
from ..models.patent import Patent
from ..utils.observability import trace_span
from .fanout import dedupe_patents, gather_tolerant
from .search_client import SearchClient

logger = structlog.get_logger(__name__)


class FeaturedAggregator:
    """Samples a few patents from each seed topic."""

    def __init__(self, search_client: SearchClient, settings: Optional[Settings] = None):
        self.search_client = search_client
        self.settings = settings or search_client.settings

    async def _first_page(self, query: str) -> List[Patent]:
        return await self.search_client.search(query, page=1)

    @trace_span("portal.featured")
    async def featured(self) -> List[Patent]:
        """Return the featured patents sorted by title.

        A failing seed query contributes nothing; the result is empty only
        when no seed produced anything.
        """
        seeds = self.settings.featured_seeds
        per_seed = self.settings.featured_per_seed_limit

        results = await gather_tolerant(
            seeds, self._first_page, fanout="featured",
            concurrency=self.settings.fanout_concurrency,
        )

        sampled = []
        for patents in results:
            sampled.extend(patents[:per_seed])

        featured = sorted(dedupe_patents(sampled), key=lambda patent: patent.title)
        logger.info("Featured patents collected", seeds=len(seeds), results=len(featured))
        return featured
