"""Patent data models for the tech-transfer portal."""

from enum import Enum
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PatentCategory(str, Enum):
    """Technology categories used by the portal."""
    ALL = "All"
    AEROSPACE = "Aerospace"
    COMMUNICATIONS = "Communications"
    ELECTRICAL = "Electrical and Electronics"
    ENVIRONMENT = "Environment"
    HEALTH = "Health Medicine and Biotechnology"
    SOFTWARE = "Information Technology and Software"
    INSTRUMENTATION = "Instrumentation"
    MANUFACTURING = "Manufacturing"
    MATERIALS = "Materials and Coatings"
    MECHANICAL = "Mechanical and Fluid Systems"
    OPTICS = "Optics"
    POWER = "Power Generation and Storage"
    PROPULSION = "Propulsion"
    ROBOTICS = "Robotics Automation and Control"
    SENSORS = "Sensors"


class Patent(BaseModel):
    """Model for a patent as returned by a portal search."""
    model_config = ConfigDict(frozen=True)

    id: str
    case_number: str
    title: str
    category: str = ""
    description: str = ""
    center: str = ""
    reference_number: str = ""
    image_url: Optional[str] = None
    relevance_score: Optional[float] = None

    def same_patent(self, other: "Patent") -> bool:
        """Two records describe the same patent if either identifier matches."""
        return self.id == other.id or (
            bool(self.case_number) and self.case_number == other.case_number
        )


class PatentDetail(BaseModel):
    """Model for a fully scraped patent detail page."""
    model_config = ConfigDict(frozen=True)

    id: str
    case_number: str
    title: str
    full_description: str = ""
    benefits: List[str] = Field(default_factory=list)
    applications: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    patent_numbers: List[str] = Field(default_factory=list)
    related_technologies: List[str] = Field(default_factory=list)


class PatentMatch(BaseModel):
    """Model for a scored match between a problem and a candidate patent."""
    model_config = ConfigDict(frozen=True)

    patent_index: int
    relevance_score: int = Field(ge=0, le=100)
    explanation: str = ""
    application_idea: str = ""


class ProblemSolution(BaseModel):
    """Model for the outcome of matching a problem against candidates."""
    model_config = ConfigDict(frozen=True)

    problem: str
    summary: str
    matches: List[PatentMatch] = Field(default_factory=list)
    additional_suggestions: Optional[str] = None


class MatchResult(BaseModel):
    """A problem solution bound to the candidate list its indices refer to."""
    model_config = ConfigDict(frozen=True)

    solution: ProblemSolution
    candidates: List[Patent] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_match_indices(self) -> "MatchResult":
        for match in self.solution.matches:
            if not 0 <= match.patent_index < len(self.candidates):
                raise ValueError(
                    f"patent_index {match.patent_index} outside {len(self.candidates)} candidates"
                )
        return self

    def matched_patents(self) -> Iterator[Tuple[PatentMatch, Patent]]:
        """Yield each match together with the patent it points at."""
        for match in self.solution.matches:
            yield match, self.candidates[match.patent_index]
