import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence

from profile_grader.application.scoring_service import ScoringService
from profile_grader.domain.exceptions import DatabaseException
from profile_grader.domain.models import AnalysisResult, Repository
from profile_grader.infrastructure.database import PostgresRepository
from profile_grader.infrastructure.github_client import GitHubRestClient
from profile_grader.infrastructure.narrative import NarrativeGenerator

logger = logging.getLogger(__name__)

TOP_REPOSITORIES = 5


def language_histogram(repositories: Sequence[Repository]) -> Dict[str, int]:
    """Number of repositories per primary language, most common first."""
    counts = Counter(r.language for r in repositories if r.language)
    return dict(counts.most_common())


class AnalysisService:
    """
    Orchestrates one analysis run: fetch profile and repositories, score them,
    pair the score with a narrative and optionally persist the report.

    Only DataUnavailableException (and its subclasses) escapes `analyze`.
    """

    def __init__(
            self,
            github_client: GitHubRestClient,
            narrative_generator: NarrativeGenerator,
            report_store: Optional[PostgresRepository] = None,
            clock: Optional[Callable[[], datetime]] = None,
    ):
        self.github_client = github_client
        self.narrative_generator = narrative_generator
        self.report_store = report_store
        self.scoring_service = ScoringService(fetcher=github_client, clock=clock)

    async def analyze(self, handle: str) -> AnalysisResult:
        logger.info(f"Analyzing GitHub profile '{handle}'.")

        profile = await self.github_client.fetch_profile(handle)
        repositories = await self.github_client.fetch_repositories(profile.login)

        score = await self.scoring_service.score(profile, repositories)
        narrative = await self.narrative_generator.generate(profile, repositories, score)

        result = AnalysisResult(
            profile=profile,
            score=score,
            narrative=narrative,
            languages=language_histogram(repositories),
            top_repositories=list(repositories[:TOP_REPOSITORIES]),
        )

        if self.report_store is not None:
            try:
                await self.report_store.upsert_score(result)
            except DatabaseException as e:
                logger.error(f"Could not persist report for '{profile.login}': {e}")

        return result
