from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict

BREAKDOWN_MAXIMA: Dict[str, float] = {
    "documentation": 20,
    "code_quality": 20,
    "activity": 15,
    "organization": 10,
    "impact": 15,
    "technical_depth": 15,
    "collaboration": 5,
}

Verdict = Literal["Hire Ready", "Improving", "Weak"]


class Profile(BaseModel):
    """
    Immutable snapshot of a GitHub user profile.
    Only identity and the aggregate counters used by the report are kept.
    """
    model_config = ConfigDict(frozen=True)

    login: str = Field(..., description="GitHub login (handle)")
    id: int = Field(0, description="Numeric GitHub user ID")
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    public_repos: int = Field(0, ge=0)
    followers: int = Field(0, ge=0)
    following: int = Field(0, ge=0)
    created_at: datetime = Field(..., description="Account creation timestamp")
    blog: Optional[str] = None


class Repository(BaseModel):
    """
    Immutable domain model representing one repository owned by the profile.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the repository")
    full_name: str = Field("", description="owner/name")
    description: Optional[str] = None
    language: Optional[str] = Field(None, description="Primary language reported by GitHub")
    stars: int = Field(0, ge=0, description="Total number of stargazers")
    forks: int = Field(0, ge=0)
    homepage: Optional[str] = None
    size: int = Field(0, ge=0, description="Repository size in KB")
    is_fork: bool = False
    is_archived: bool = False
    has_issues_enabled: bool = True
    topics: Tuple[str, ...] = ()
    created_at: datetime
    updated_at: datetime
    pushed_at: datetime

    @property
    def is_own_work(self) -> bool:
        return not self.is_fork and not self.is_archived

    @property
    def has_live_homepage(self) -> bool:
        return bool(self.homepage) and self.homepage.startswith("http")


class RepositoryEnrichment(BaseModel):
    """README text and root file listing fetched for one primary repository."""
    model_config = ConfigDict(frozen=True)

    repository: Repository
    readme_text: Optional[str] = None
    root_file_names: Tuple[str, ...] = ()

    @property
    def has_readme(self) -> bool:
        return bool(self.readme_text)

    @property
    def lowered_file_names(self) -> Tuple[str, ...]:
        return tuple(name.lower() for name in self.root_file_names)


class ScoreBreakdown(BaseModel):
    """Seven weighted sub-scores; the maxima sum to 100."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    documentation: float = Field(0.0, ge=0, le=20)
    code_quality: float = Field(0.0, ge=0, le=20, alias="codeQuality")
    activity: float = Field(0.0, ge=0, le=15)
    organization: float = Field(0.0, ge=0, le=10)
    impact: float = Field(0.0, ge=0, le=15)
    technical_depth: float = Field(0.0, ge=0, le=15, alias="technicalDepth")
    collaboration: float = Field(0.0, ge=0, le=5)

    def total(self) -> float:
        return sum(getattr(self, name) for name in BREAKDOWN_MAXIMA)


class Penalty(BaseModel):
    """A fixed deduction triggered by a red flag on the full repository list."""
    model_config = ConfigDict(frozen=True)

    code: Literal["stale_profile", "mirror_profile", "shallow_profile"]
    points: int = Field(..., gt=0)
    reason: str


class ProfileScore(BaseModel):
    """
    Result of one scoring run.
    `overall` is the breakdown total minus penalties, clamped to [0, 100] and rounded.
    """
    model_config = ConfigDict(frozen=True)

    overall: int = Field(..., ge=0, le=100)
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    penalties: Tuple[Penalty, ...] = ()


class Narrative(BaseModel):
    """Recruiter-style critique paired with a score."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    verdict: Verdict
    strengths: List[str]
    red_flags: List[str] = Field(..., alias="redFlags")
    improvements: List[str]
    summary: str = Field(..., min_length=1)
    is_fallback: bool = Field(False, exclude=True)


class AnalysisResult(BaseModel):
    """Everything produced for one analysed handle."""
    model_config = ConfigDict(frozen=True)

    profile: Profile
    score: ProfileScore
    narrative: Narrative
    languages: Dict[str, int] = Field(default_factory=dict)
    top_repositories: List[Repository] = Field(default_factory=list)
