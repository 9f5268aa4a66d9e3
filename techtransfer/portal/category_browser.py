"""Category browsing on top of keyword search."""

from typing import List, Optional, Union

import structlog

from ..config import Settings
from ..models.patent import Patent, PatentCategory
from ..utils.observability import trace_span
from .search_client import SearchClient

logger = structlog.get_logger(__name__)


def matches_category(patent_category: str, target: str, min_word_length: int = 3) -> bool:
    """Check whether a patent's free-text category label fits a target category.

    The portal's labels are inconsistent, so besides an exact match any word
    of the target longer than ``min_word_length`` found inside the label
    counts, e.g. "Health" matches "Health Medicine and Biotechnology".
    """
    label = patent_category.lower()
    wanted = target.lower()
    if label == wanted:
        return True
    return any(len(word) > min_word_length and word in label for word in wanted.split())


class CategoryBrowser:
    """Browse patents by category with a fail-open label filter."""

    def __init__(self, search_client: SearchClient, settings: Optional[Settings] = None):
        self.search_client = search_client
        self.settings = settings or search_client.settings

    def filter_by_category(self, patents: List[Patent], category: str) -> List[Patent]:
        """Keep patents whose label matches, or all of them if none does."""
        filtered = [
            patent for patent in patents
            if matches_category(patent.category, category, self.settings.category_min_word_length)
        ]
        if not filtered and self.settings.category_fail_open:
            logger.info("Category filter removed every result, returning unfiltered",
                        category=category, results=len(patents))
            return patents
        return filtered

    @trace_span("portal.browse")
    async def browse(self, category: Union[PatentCategory, str] = PatentCategory.ALL,
                     page: int = 1) -> List[Patent]:
        """Return one page of patents in a category."""
        category = PatentCategory(category)
        if category == PatentCategory.ALL:
            return await self.search_client.search(self.settings.browse_all_query, page=page)

        patents = await self.search_client.search(category.value, page=page)
        return self.filter_by_category(patents, category.value)
