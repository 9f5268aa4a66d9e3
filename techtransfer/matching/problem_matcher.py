"""Matches a natural-language problem to portal patents."""

from enum import Enum
from typing import Callable, List, Optional, Protocol

import structlog

from ..config import Settings
from ..errors import NoResultsError
from ..models.patent import MatchResult, Patent, PatentMatch, ProblemSolution
from ..portal.fanout import dedupe_patents, gather_tolerant
from ..portal.search_client import SearchClient
from ..utils.observability import metrics, trace_operation, trace_span

logger = structlog.get_logger(__name__)

NO_PATENTS_SUMMARY = "No patents found matching your search. Try describing your problem differently."
NO_PATENTS_SUGGESTIONS = (
    "Consider breaking down your problem into specific technical challenges, "
    "or try searching for related technologies."
)


class MatcherState(str, Enum):
    """Stages a solve request moves through."""
    IDLE = "idle"
    EXTRACTING_TERMS = "extracting_terms"
    SEARCHING_CANDIDATES = "searching_candidates"
    SCORING_MATCHES = "scoring_matches"
    DONE = "done"
    FAILED = "failed"


class ProblemAnalysisCapability(Protocol):
    """The two AI calls the matcher depends on."""

    async def extract_search_terms(self, problem: str) -> List[str]:
        ...

    async def find_patents_for_problem(self, problem: str, patents: List[Patent]) -> ProblemSolution:
        ...


StateCallback = Callable[[MatcherState], None]


def no_patents_solution(problem: str) -> ProblemSolution:
    return ProblemSolution(
        problem=problem,
        summary=NO_PATENTS_SUMMARY,
        matches=[],
        additional_suggestions=NO_PATENTS_SUGGESTIONS,
    )


def validate_matches(solution: ProblemSolution, candidate_count: int) -> ProblemSolution:
    """Drop matches whose index does not point into the candidate list."""
    valid: List[PatentMatch] = []
    for match in solution.matches:
        if 0 <= match.patent_index < candidate_count:
            valid.append(match)
        else:
            metrics.dropped_matches.inc()
            logger.warning("Dropping match with out-of-range index",
                           patent_index=match.patent_index, candidates=candidate_count)
    if len(valid) == len(solution.matches):
        return solution
    return solution.model_copy(update={"matches": valid})


class ProblemMatcher:
    """Runs problem text through keyword extraction, search and scoring.

    Each call to ``solve`` is independent; the matcher holds no per-request
    state, so one instance can serve concurrent requests.
    """

    def __init__(self, search_client: SearchClient, analyzer: ProblemAnalysisCapability,
                 settings: Optional[Settings] = None):
        self.search_client = search_client
        self.analyzer = analyzer
        self.settings = settings or search_client.settings

    async def gather_candidates(self, keywords: List[str]) -> List[Patent]:
        """Search the leading keywords, skipping failures, and dedupe the union."""
        queries = keywords[:self.settings.max_keywords]
        results = await gather_tolerant(
            queries, self.search_client.search, fanout="problem_matcher",
            concurrency=self.settings.fanout_concurrency,
        )
        collected = [patent for patents in results for patent in patents]
        return dedupe_patents(collected)

    @trace_span("matcher.solve")
    async def solve(self, problem: str, on_state: Optional[StateCallback] = None) -> MatchResult:
        """Find patents that could help with a problem.

        Failures of keyword extraction or scoring are raised unchanged. An
        empty candidate set is not a failure: it yields a canned solution
        without calling the scoring step.
        """
        def transition(state: MatcherState):
            logger.debug("Matcher state changed", state=state.value)
            if on_state is not None:
                on_state(state)

        problem = (problem or "").strip()
        if not problem:
            raise NoResultsError()

        transition(MatcherState.IDLE)
        try:
            transition(MatcherState.EXTRACTING_TERMS)
            async with trace_operation("matcher.extract_terms"):
                keywords = await self.analyzer.extract_search_terms(problem)

            transition(MatcherState.SEARCHING_CANDIDATES)
            async with trace_operation("matcher.search_candidates", {"keywords": len(keywords)}):
                candidates = await self.gather_candidates(keywords)

            if not candidates:
                logger.info("No candidate patents found", keywords=keywords)
                metrics.problem_solutions.labels(outcome="no_candidates").inc()
                transition(MatcherState.DONE)
                return MatchResult(solution=no_patents_solution(problem), candidates=[])

            transition(MatcherState.SCORING_MATCHES)
            async with trace_operation("matcher.score", {"candidates": len(candidates)}):
                solution = await self.analyzer.find_patents_for_problem(problem, candidates)

            solution = validate_matches(solution, len(candidates))

        except Exception as e:
            metrics.problem_solutions.labels(outcome="failed").inc()
            logger.error("Problem matching failed", error=str(e), error_class=e.__class__.__name__)
            transition(MatcherState.FAILED)
            raise

        metrics.problem_solutions.labels(outcome="matched").inc()
        logger.info("Problem matched", keywords=keywords, candidates=len(candidates),
                    matches=len(solution.matches))
        transition(MatcherState.DONE)
        return MatchResult(solution=solution, candidates=candidates)
