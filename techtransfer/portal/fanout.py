"""Failure-tolerant fan-out over several searches, and patent deduplication."""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Sequence

import structlog

from ..models.patent import Patent
from ..utils.observability import metrics

logger = structlog.get_logger(__name__)


def dedupe_patents(patents: Iterable[Patent]) -> List[Patent]:
    """Drop repeated patents, keeping the first occurrence.

    A patent repeats an earlier one when either its id or its case number
    has been seen before.
    """
    unique: List[Patent] = []
    for patent in patents:
        if any(patent.same_patent(kept) for kept in unique):
            continue
        unique.append(patent)
    return unique


async def gather_tolerant(
    queries: Sequence[str],
    fetch: Callable[[str], Awaitable[List[Patent]]],
    fanout: str,
    concurrency: int = 1,
) -> List[List[Patent]]:
    """Run one fetch per query, substituting an empty list for any failure.

    Results come back in query order whatever the concurrency, so callers
    see the same accumulation order as a sequential run.
    """
    async def run_one(query: str) -> List[Patent]:
        try:
            return await fetch(query)
        except Exception as e:
            metrics.fanout_subquery_failures.labels(fanout=fanout).inc()
            logger.warning("Skipping failed sub-query", fanout=fanout, query=query,
                           error=str(e), error_class=e.__class__.__name__)
            return []

    if concurrency <= 1:
        results = []
        for query in queries:
            results.append(await run_one(query))
        return results

    semaphore = asyncio.Semaphore(concurrency)

    async def bounded(query: str) -> List[Patent]:
        async with semaphore:
            return await run_one(query)

    return list(await asyncio.gather(*(bounded(query) for query in queries)))
