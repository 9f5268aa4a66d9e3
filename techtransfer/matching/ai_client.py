"""Claude-backed implementation of the problem analysis capability."""

import json
import time
from typing import Any, Dict, List, Optional

import structlog
from anthropic import AsyncAnthropic

from ..config import Settings
from ..errors import AICredentialError, AIResponseError
from ..models.patent import Patent, PatentMatch, ProblemSolution
from ..utils.credentials import CredentialProvider, EnvCredentialProvider
from ..utils.observability import metrics, trace_span

logger = structlog.get_logger(__name__)

EXTRACT_TERMS_PROMPT = """You help people find NASA technologies that could solve their problems.

Read the problem below and return 3 to 5 short search keywords (one or two words each) \
that would find relevant patents in NASA's technology transfer catalog. Put the most \
useful keyword first.

Respond with only a JSON array of strings, for example: ["thermal control", "heat pipe", "insulation"]

Problem: {problem}"""

FIND_PATENTS_PROMPT = """You match real-world problems to NASA patented technologies.

Problem: {problem}

Candidate patents (by index):
{candidates}

Pick the candidates that could genuinely help with the problem. Respond with only a JSON \
object of this form:
{{
  "summary": "one or two sentences on how NASA technology can help",
  "matches": [
    {{
      "patentIndex": 0,
      "relevanceScore": 85,
      "explanation": "why this patent addresses the problem",
      "applicationIdea": "a concrete way to apply it"
    }}
  ],
  "additionalSuggestions": "optional further advice, or null"
}}

patentIndex must be the index shown for the candidate. relevanceScore is 0-100. \
Order matches from most to least relevant and leave out candidates that do not help."""


def _extract_json(text: str, opening: str, closing: str) -> Any:
    """Parse the outermost JSON value delimited by the given brackets."""
    start = text.find(opening)
    end = text.rfind(closing) + 1
    if start < 0 or end <= start:
        raise AIResponseError(f"No JSON {opening}{closing} found in model response")
    try:
        return json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Model returned malformed JSON: {e}") from e


def _clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, score))


def _match_index(value: Any) -> Optional[int]:
    """Accept ints and whole-number floats such as 2.0."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def format_candidates(patents: List[Patent], description_chars: int = 300) -> str:
    """Render candidates as an indexed list for the prompt."""
    lines = []
    for index, patent in enumerate(patents):
        description = patent.description
        if len(description) > description_chars:
            description = description[:description_chars].rstrip() + "..."
        lines.append(
            f"[{index}] {patent.title} (case {patent.case_number}, category: {patent.category or 'n/a'})\n"
            f"    {description}"
        )
    return "\n".join(lines)


def parse_solution(problem: str, payload: Dict[str, Any]) -> ProblemSolution:
    """Build a ProblemSolution from the model's JSON answer."""
    if not isinstance(payload, dict):
        raise AIResponseError("Model response is not a JSON object")

    matches = []
    for item in payload.get("matches") or []:
        if not isinstance(item, dict):
            continue
        index = _match_index(item.get("patentIndex", item.get("patent_index")))
        if index is None:
            logger.warning("Skipping match without integer index", match=item)
            continue
        matches.append(PatentMatch(
            patent_index=index,
            relevance_score=_clamp_score(item.get("relevanceScore", item.get("relevance_score"))),
            explanation=str(item.get("explanation") or ""),
            application_idea=str(item.get("applicationIdea") or item.get("application_idea") or ""),
        ))

    suggestions = payload.get("additionalSuggestions", payload.get("additional_suggestions"))
    return ProblemSolution(
        problem=problem,
        summary=str(payload.get("summary") or ""),
        matches=matches,
        additional_suggestions=str(suggestions) if suggestions else None,
    )


class ClaudeProblemAnalyzer:
    """Keyword extraction and relevance scoring through the Anthropic Messages API."""

    def __init__(self, settings: Optional[Settings] = None,
                 credentials: Optional[CredentialProvider] = None,
                 client: Optional[AsyncAnthropic] = None):
        self.settings = settings or Settings()
        self.credentials = credentials or EnvCredentialProvider()
        self._injected_client = client
        self._client: Optional[AsyncAnthropic] = None
        self._client_key: Optional[str] = None

    async def _get_client(self) -> AsyncAnthropic:
        """Return a client authorized with the current key, rebuilding it when the key changes."""
        if self._injected_client is not None:
            return self._injected_client

        api_key = self.credentials.get_api_key()
        if not api_key:
            raise AICredentialError()
        if self._client is None or self._client_key != api_key:
            await self.aclose()
            self._client = AsyncAnthropic(api_key=api_key, timeout=self.settings.request_timeout)
            self._client_key = api_key
        return self._client

    async def aclose(self):
        """Close the client built from a stored key; an injected client belongs to the caller."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._client_key = None

    async def _complete(self, capability: str, prompt: str) -> str:
        client = await self._get_client()
        start_time = time.time()
        try:
            response = await client.messages.create(
                model=self.settings.ai_model,
                max_tokens=self.settings.ai_max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            metrics.ai_calls.labels(capability=capability, status="error").inc()
            logger.error("AI call failed", capability=capability, error=str(e))
            raise
        finally:
            metrics.ai_call_duration.labels(capability=capability).observe(time.time() - start_time)

        metrics.ai_calls.labels(capability=capability, status="success").inc()
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    @trace_span("ai.extract_search_terms")
    async def extract_search_terms(self, problem: str) -> List[str]:
        """Turn a problem description into ranked search keywords."""
        text = await self._complete("extract_search_terms", EXTRACT_TERMS_PROMPT.format(problem=problem))
        terms = _extract_json(text, "[", "]")
        if not isinstance(terms, list):
            raise AIResponseError("Expected a JSON array of keywords")

        keywords = [str(term).strip() for term in terms if str(term).strip()]
        logger.info("Search terms extracted", keywords=keywords)
        return keywords

    @trace_span("ai.find_patents_for_problem")
    async def find_patents_for_problem(self, problem: str, patents: List[Patent]) -> ProblemSolution:
        """Score candidates against the problem; indices refer to ``patents``."""
        prompt = FIND_PATENTS_PROMPT.format(
            problem=problem,
            candidates=format_candidates(patents, self.settings.ai_description_chars),
        )
        text = await self._complete("find_patents_for_problem", prompt)
        solution = parse_solution(problem, _extract_json(text, "{", "}"))
        logger.info("Candidates scored", candidates=len(patents), matches=len(solution.matches))
        return solution
