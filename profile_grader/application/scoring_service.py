import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from profile_grader.domain.models import (
    BREAKDOWN_MAXIMA,
    Penalty,
    Profile,
    ProfileScore,
    Repository,
    RepositoryEnrichment,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)

MAX_PRIMARY_REPOS = 5
SECONDS_PER_DAY = 86_400

# README quality signals: (keywords, increment). Length signals are handled separately.
README_SIGNALS: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("install", "setup"), 0.15),
    (("usage", "demo", "screenshot"), 0.15),
    (("tech stack", "built with", "framework"), 0.1),
    (("badge", "img.shields.io"), 0.1),
)

MODULAR_DIRS = ("src", "lib", "app", "packages", "internal", "cmd")
TEST_HINTS = ("test", "spec", "jest", "vitest")
TOOLING_HINTS = ("eslint", "prettier", "tsconfig", "ruff", "checkstyle")
LOCKFILE_HINTS = ("lock", "requirement.txt", "requirements.txt", "gemfile", "go.sum")
HYGIENE_FILES = (".env.example", ".gitignore", "makefile")

BACKEND_DIRS = ("routes", "controllers", "services", "api", "handlers", "middleware")
PERSISTENCE_DIRS = ("db", "models", "migrations", "schema", "prisma", "entities")
INFRA_HINTS = ("docker", "k8s", "terraform", "github/workflows", ".github")

COMMUNITY_FILES = ("contributing.md", "code_of_conduct.md")
ISSUE_TEMPLATE_FILES = ("issue_template", ".github")

STALE_AFTER = timedelta(days=365)
RECENT_WINDOW = timedelta(days=90)
SECONDARY_WINDOW = timedelta(days=180)


class EnrichmentFetcher(Protocol):
    async def fetch_readme(self, owner: str, repo_name: str) -> Optional[str]: ...

    async def fetch_root_listing(self, owner: str, repo_name: str) -> Sequence[str]: ...


def _clamp(value: float, limit: float) -> float:
    return round(max(0.0, min(float(limit), value)), 2)


def _has_exact(files: Sequence[str], names: Sequence[str]) -> bool:
    return any(f in names for f in files)


def _has_substring(files: Sequence[str], hints: Sequence[str]) -> bool:
    return any(hint in f for f in files for hint in hints)


def _relevance(repo: Repository) -> float:
    return repo.stars * 10 + repo.pushed_at.timestamp() / SECONDS_PER_DAY


def select_own_work(repositories: Sequence[Repository]) -> List[Repository]:
    return [repo for repo in repositories if repo.is_own_work]


def select_primary(own_work: Sequence[Repository], limit: int = MAX_PRIMARY_REPOS) -> List[Repository]:
    """Top own-work repositories by popularity with a gentle recency decay (stable on ties)."""
    return sorted(own_work, key=_relevance, reverse=True)[:limit]


def readme_quality(readme: Optional[str]) -> float:
    if not readme:
        return 0.0
    score = 0.0
    if len(readme) > 800:
        score += 0.3
    if len(readme) > 2000:
        score += 0.2
    lowered = readme.lower()
    for keywords, increment in README_SIGNALS:
        if any(keyword in lowered for keyword in keywords):
            score += increment
    return min(score, 1.0)


def documentation_score(details: Sequence[RepositoryEnrichment]) -> float:
    if not details:
        return 0.0
    coverage = sum(1 for d in details if d.has_readme) / len(details)
    avg_quality = sum(readme_quality(d.readme_text) for d in details) / len(details)
    return _clamp(coverage * 8 + avg_quality * 12, BREAKDOWN_MAXIMA["documentation"])


def structure_score(files: Sequence[str]) -> float:
    score = 0
    if _has_exact(files, MODULAR_DIRS):
        score += 4
    if _has_substring(files, TEST_HINTS):
        score += 5
    if _has_substring(files, TOOLING_HINTS):
        score += 4
    if _has_substring(files, LOCKFILE_HINTS):
        score += 4
    if _has_exact(files, HYGIENE_FILES):
        score += 3
    return min(score, 20)


def code_quality_score(details: Sequence[RepositoryEnrichment]) -> float:
    if not details:
        return 0.0
    total = sum(structure_score(d.lowered_file_names) for d in details)
    return _clamp(total / len(details), BREAKDOWN_MAXIMA["code_quality"])


def activity_score(repositories: Sequence[Repository], own_count: int, now: datetime) -> float:
    recent = sum(1 for r in repositories if r.pushed_at > now - RECENT_WINDOW)
    secondary = sum(1 for r in repositories if r.pushed_at > now - SECONDARY_WINDOW)
    activity_ratio = min((recent * 1.5 + secondary) / 5, 1.0)
    volume = min(own_count / 8, 1.0)
    return _clamp(activity_ratio * 10 + volume * 5, BREAKDOWN_MAXIMA["activity"])


def organization_score(repositories: Sequence[Repository], own_work: Sequence[Repository]) -> float:
    described = sum(1 for r in repositories if r.description and r.description.strip())
    tagged = sum(1 for r in own_work if r.topics)
    description_ratio = described / (len(repositories) or 1)
    topic_ratio = tagged / (len(own_work) or 1)
    return _clamp(description_ratio * 7 + topic_ratio * 3, BREAKDOWN_MAXIMA["organization"])


def impact_score(repositories: Sequence[Repository], own_work: Sequence[Repository]) -> float:
    total_stars = sum(r.stars for r in repositories)
    live_ratio = sum(1 for r in own_work if r.has_live_homepage) / (len(own_work) or 1)
    return _clamp(min(total_stars / 30, 1.0) * 10 + live_ratio * 5, BREAKDOWN_MAXIMA["impact"])


def complexity_points(detail: RepositoryEnrichment) -> int:
    files = detail.lowered_file_names
    points = 0
    if 2000 < detail.repository.size < 500_000:
        points += 2
    if _has_exact(files, BACKEND_DIRS):
        points += 3
    if _has_exact(files, PERSISTENCE_DIRS):
        points += 3
    if _has_substring(files, INFRA_HINTS):
        points += 2
    return points


def technical_depth_score(repositories: Sequence[Repository], details: Sequence[RepositoryEnrichment]) -> float:
    if not details:
        return 0.0
    languages = {r.language for r in repositories if r.language}
    # 2-5 languages reads as specialization; more is treated as noise
    diversity = 1.0 if 2 <= len(languages) <= 5 else min(len(languages) / 3, 0.6)
    complexity = min(sum(complexity_points(d) for d in details) / (len(details) * 5), 1.0)
    return _clamp(diversity * 5 + complexity * 10, BREAKDOWN_MAXIMA["technical_depth"])


def collaboration_score(details: Sequence[RepositoryEnrichment]) -> float:
    if not details:
        return 0.0
    total = 0.0
    for d in details:
        files = d.lowered_file_names
        if _has_exact(files, COMMUNITY_FILES):
            total += 2.5
        if _has_exact(files, ISSUE_TEMPLATE_FILES):
            total += 2.5
    return _clamp(total / len(details), BREAKDOWN_MAXIMA["collaboration"])


def detect_penalties(repositories: Sequence[Repository], own_count: int, now: datetime) -> List[Penalty]:
    penalties: List[Penalty] = []
    total = len(repositories)

    latest_push = max(r.pushed_at for r in repositories)
    if now - latest_push > STALE_AFTER:
        penalties.append(Penalty(
            code="stale_profile", points=15,
            reason=f"No push in {(now - latest_push).days} days.",
        ))

    own_ratio = own_count / total
    if own_ratio < 0.2 and total > 5:
        penalties.append(Penalty(
            code="mirror_profile", points=10,
            reason=f"Only {own_count} of {total} repositories are original work.",
        ))

    average_size = sum(r.size for r in repositories) / total
    if average_size < 100 and total > 3:
        penalties.append(Penalty(
            code="shallow_profile", points=5,
            reason=f"Average repository size is {average_size:.0f} KB.",
        ))

    return penalties


class ScoringService:
    """
    Turns a profile and its repository list into a 0-100 score with a
    seven-factor breakdown.

    README and root listings are fetched concurrently for at most
    MAX_PRIMARY_REPOS repositories; a failing fetch contributes nothing rather
    than aborting the run.
    """

    def __init__(self, fetcher: EnrichmentFetcher, clock: Optional[Callable[[], datetime]] = None):
        self.fetcher = fetcher
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def score(self, profile: Profile, repositories: Sequence[Repository]) -> ProfileScore:
        if not repositories:
            logger.info(f"'{profile.login}' has no repositories. Returning an empty score.")
            return ProfileScore(overall=0, breakdown=ScoreBreakdown())

        now = self.clock()
        own_work = select_own_work(repositories)
        primary = select_primary(own_work)
        logger.info(
            f"Scoring '{profile.login}': {len(repositories)} repositories, "
            f"{len(own_work)} own work, primary: {[r.name for r in primary]}."
        )

        details = await self.enrich(profile.login, primary)

        breakdown = ScoreBreakdown(
            documentation=documentation_score(details),
            code_quality=code_quality_score(details),
            activity=activity_score(repositories, len(own_work), now),
            organization=organization_score(repositories, own_work),
            impact=impact_score(repositories, own_work),
            technical_depth=technical_depth_score(repositories, details),
            collaboration=collaboration_score(details),
        )

        penalties = detect_penalties(repositories, len(own_work), now)
        deduction = sum(p.points for p in penalties)
        overall = round(max(0.0, min(100.0, breakdown.total() - deduction)))

        logger.info(
            f"'{profile.login}' scored {overall} "
            f"(base {breakdown.total():.2f}, penalties -{deduction})."
        )
        return ProfileScore(overall=overall, breakdown=breakdown, penalties=tuple(penalties))

    async def enrich(self, owner: str, primary: Sequence[Repository]) -> List[RepositoryEnrichment]:
        """Fans out README and listing fetches for every primary repository and waits for all of them."""
        tasks = [self._enrich_one(owner, repo) for repo in primary]
        return list(await asyncio.gather(*tasks))

    async def _enrich_one(self, owner: str, repo: Repository) -> RepositoryEnrichment:
        readme, listing = await asyncio.gather(
            self.fetcher.fetch_readme(owner, repo.name),
            self.fetcher.fetch_root_listing(owner, repo.name),
            return_exceptions=True,
        )

        if isinstance(readme, Exception):
            logger.warning(f"README fetch for {owner}/{repo.name} failed: {readme}. Treating as absent.")
            readme = None
        if isinstance(listing, Exception):
            logger.warning(f"Listing fetch for {owner}/{repo.name} failed: {listing}. Treating as empty.")
            listing = ()

        return RepositoryEnrichment(
            repository=repo,
            readme_text=readme,
            root_file_names=tuple(listing or ()),
        )
