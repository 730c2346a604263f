import unittest
from datetime import datetime, timedelta, timezone

from profile_grader.application.analysis_service import AnalysisService, language_histogram
from profile_grader.domain.exceptions import DatabaseException, ProfileNotFoundException
from profile_grader.domain.models import Profile, Repository
from profile_grader.infrastructure.narrative import NarrativeGenerator

NOW = datetime(2026, 1, 15, tzinfo=timezone.utc)


def _repo(name: str, language=None, **overrides) -> Repository:
    pushed = NOW - timedelta(days=5)
    return Repository(
        name=name,
        language=language,
        size=2500,
        created_at=pushed,
        updated_at=pushed,
        pushed_at=pushed,
        **overrides,
    )


class _FakeGitHubClient:
    def __init__(self, repositories, missing=False) -> None:
        self.repositories = repositories
        self.missing = missing
        self.enriched = []

    async def fetch_profile(self, handle):
        if self.missing:
            raise ProfileNotFoundException(handle)
        return Profile(login=handle, created_at=datetime(2015, 1, 1, tzinfo=timezone.utc))

    async def fetch_repositories(self, handle):
        return list(self.repositories)

    async def fetch_readme(self, owner, repo_name):
        self.enriched.append(repo_name)
        return "install and usage"

    async def fetch_root_listing(self, owner, repo_name):
        return ["src", "tests"]


class _FakeStore:
    def __init__(self, error=None) -> None:
        self.saved = []
        self.error = error

    async def upsert_score(self, result) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append(result)


def _service(client, store=None) -> AnalysisService:
    return AnalysisService(
        github_client=client,
        narrative_generator=NarrativeGenerator(api_key=None),
        report_store=store,
        clock=lambda: NOW,
    )


class TestLanguageHistogram(unittest.TestCase):
    def test_counts_languages_most_common_first(self) -> None:
        repos = [_repo("a", "Go"), _repo("b", "Python"), _repo("c", "Python"), _repo("d")]

        histogram = language_histogram(repos)

        self.assertEqual(histogram, {"Python": 2, "Go": 1})
        self.assertEqual(list(histogram), ["Python", "Go"])


class TestAnalysisService(unittest.IsolatedAsyncioTestCase):
    async def test_analyze_scores_narrates_and_persists(self) -> None:
        repos = [_repo(f"r{i}", "Python", description="d") for i in range(7)]
        client = _FakeGitHubClient(repos)
        store = _FakeStore()

        result = await _service(client, store).analyze("octocat")

        self.assertEqual(result.profile.login, "octocat")
        self.assertEqual(len(client.enriched), 5)
        self.assertEqual([r.name for r in result.top_repositories], ["r0", "r1", "r2", "r3", "r4"])
        self.assertEqual(result.languages, {"Python": 7})
        self.assertTrue(result.narrative.is_fallback)
        self.assertGreater(result.score.overall, 0)
        self.assertEqual(store.saved, [result])

    async def test_missing_profile_propagates(self) -> None:
        client = _FakeGitHubClient([], missing=True)

        with self.assertRaises(ProfileNotFoundException):
            await _service(client).analyze("ghost")

    async def test_empty_profile_still_produces_a_result(self) -> None:
        result = await _service(_FakeGitHubClient([])).analyze("octocat")

        self.assertEqual(result.score.overall, 0)
        self.assertEqual(result.narrative.verdict, "Weak")
        self.assertEqual(result.top_repositories, [])

    async def test_store_failure_does_not_discard_result(self) -> None:
        store = _FakeStore(error=DatabaseException("connection lost"))

        with self.assertLogs("profile_grader.application.analysis_service", level="ERROR"):
            result = await _service(_FakeGitHubClient([_repo("a")]), store).analyze("octocat")

        self.assertEqual(result.profile.login, "octocat")
