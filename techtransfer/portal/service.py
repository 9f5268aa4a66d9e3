"""Facade exposing the portal operations over one shared transport."""

from typing import List, Optional, Union

import structlog

from ..config import Settings
from ..matching.ai_client import ClaudeProblemAnalyzer
from ..matching.problem_matcher import ProblemAnalysisCapability, ProblemMatcher, StateCallback
from ..models.patent import MatchResult, Patent, PatentCategory, PatentDetail
from ..utils.credentials import CredentialProvider
from ..utils.transport import PortalTransport
from .category_browser import CategoryBrowser
from .detail_scraper import DetailScraper
from .featured import FeaturedAggregator
from .search_client import SearchClient

logger = structlog.get_logger(__name__)


class TechTransferPortal:
    """Entry point for callers: search, browse, featured, lookup, detail and solve."""

    def __init__(self, settings: Optional[Settings] = None,
                 transport: Optional[PortalTransport] = None,
                 analyzer: Optional[ProblemAnalysisCapability] = None,
                 credentials: Optional[CredentialProvider] = None):
        self.settings = settings or Settings()
        self._owns_transport = transport is None
        self.transport = transport or PortalTransport(self.settings)

        self.search_client = SearchClient(self.transport, self.settings)
        self.category_browser = CategoryBrowser(self.search_client, self.settings)
        self.featured_aggregator = FeaturedAggregator(self.search_client, self.settings)
        self.detail_scraper = DetailScraper(self.transport, self.settings)
        self._owns_analyzer = analyzer is None
        self.analyzer = analyzer or ClaudeProblemAnalyzer(self.settings, credentials)
        self.matcher = ProblemMatcher(self.search_client, self.analyzer, self.settings)

    async def search(self, query: str, page: int = 1) -> List[Patent]:
        return await self.search_client.search(query, page=page)

    async def browse(self, category: Union[PatentCategory, str] = PatentCategory.ALL,
                     page: int = 1) -> List[Patent]:
        return await self.category_browser.browse(category, page=page)

    async def featured(self) -> List[Patent]:
        return await self.featured_aggregator.featured()

    async def get_by_id(self, identifier: str) -> Optional[Patent]:
        return await self.search_client.get_by_id(identifier)

    async def fetch_detail(self, case_number: str) -> PatentDetail:
        return await self.detail_scraper.fetch_detail(case_number)

    async def solve(self, problem: str, on_state: Optional[StateCallback] = None) -> MatchResult:
        return await self.matcher.solve(problem, on_state=on_state)

    async def aclose(self):
        if self._owns_analyzer:
            await self.analyzer.aclose()
        if self._owns_transport:
            await self.transport.aclose()
            logger.debug("Portal transport closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
