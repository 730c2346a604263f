import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from profile_grader.domain.exceptions import (
    DataUnavailableException,
    ProfileNotFoundException,
    RateLimitExceededException,
)
from profile_grader.infrastructure.github_client import GitHubRestClient, PAGE_SIZE, parse_handle

USER_PAYLOAD = {
    "login": "octocat",
    "id": 1,
    "public_repos": 2,
    "followers": 5,
    "following": 0,
    "created_at": "2011-01-25T18:44:36Z",
}


def _response(status, payload=None, headers=None, text=None):
    resp = AsyncMock()
    resp.status = status
    resp.headers = headers or {}
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _client_with(*responses, side_effect=None) -> GitHubRestClient:
    client = GitHubRestClient(token="test-token")
    session = AsyncMock()
    session.get = MagicMock(side_effect=side_effect or list(responses))
    client._session = session
    return client


class TestGitHubRestClient(unittest.TestCase):
    def test_headers_include_token_when_configured(self) -> None:
        client = GitHubRestClient(token="test-token")

        self.assertIsInstance(client.headers, dict)
        self.assertEqual(client.headers["Authorization"], "Bearer test-token")
        self.assertIn("User-Agent", client.headers)
        self.assertIn("Accept", client.headers)

    def test_headers_without_token(self) -> None:
        client = GitHubRestClient()
        self.assertNotIn("Authorization", client.headers)

    def test_session_requires_context_manager(self) -> None:
        with self.assertRaises(RuntimeError):
            GitHubRestClient().session


class TestParseHandle(unittest.TestCase):
    def test_accepts_bare_handles_and_urls(self) -> None:
        self.assertEqual(parse_handle("octocat"), "octocat")
        self.assertEqual(parse_handle("  @octocat "), "octocat")
        self.assertEqual(parse_handle("https://github.com/octocat"), "octocat")
        self.assertEqual(parse_handle("github.com/octocat/hello-world?tab=readme"), "octocat")
        self.assertEqual(parse_handle("https://github.com/octocat#top"), "octocat")

    def test_rejects_empty_input(self) -> None:
        for value in ("", "   ", "https://github.com/"):
            with self.assertRaises(ValueError):
                parse_handle(value)


class TestDataFetches(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_profile_translates_payload(self) -> None:
        client = _client_with(_response(200, USER_PAYLOAD))

        profile = await client.fetch_profile("octocat")

        self.assertEqual(profile.login, "octocat")
        self.assertEqual(profile.followers, 5)

    async def test_unknown_handle_raises_not_found(self) -> None:
        client = _client_with(_response(404, {"message": "Not Found"}))

        with self.assertRaises(ProfileNotFoundException) as ctx:
            await client.fetch_profile("ghost")

        self.assertEqual(ctx.exception.handle, "ghost")
        self.assertIsInstance(ctx.exception, DataUnavailableException)

    async def test_exhausted_quota_raises_rate_limited(self) -> None:
        headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1767225600"}
        client = _client_with(_response(403, {}, headers=headers))

        with self.assertRaises(RateLimitExceededException) as ctx:
            await client.fetch_profile("octocat")

        self.assertEqual(ctx.exception.reset_at, "2026-01-01T00:00:00Z")

    async def test_server_error_is_retried(self) -> None:
        client = _client_with(_response(502), _response(200, USER_PAYLOAD))

        with patch("profile_grader.infrastructure.github_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            profile = await client.fetch_profile("octocat")

        self.assertEqual(profile.login, "octocat")
        self.assertEqual(mock_sleep.await_count, 1)

    async def test_secondary_rate_limit_respects_retry_after(self) -> None:
        client = _client_with(
            _response(403, {}, headers={"Retry-After": "1"}),
            _response(200, USER_PAYLOAD),
        )

        with patch("profile_grader.infrastructure.github_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await client.fetch_profile("octocat")

        mock_sleep.assert_any_call(1)

    async def test_persistent_transport_errors_raise_data_unavailable(self) -> None:
        client = _client_with(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch("profile_grader.infrastructure.github_client.asyncio.sleep", new_callable=AsyncMock):
            with self.assertRaises(DataUnavailableException):
                await client.fetch_profile("octocat")

    async def test_client_error_is_not_retried(self) -> None:
        client = _client_with(_response(401, {"message": "Bad credentials"}))

        with self.assertRaises(DataUnavailableException):
            await client.fetch_profile("octocat")

        self.assertEqual(client.session.get.call_count, 1)

    async def test_fetch_repositories_follows_full_pages(self) -> None:
        def _page(count, offset=0):
            return [
                {"name": f"r{offset + i}", "created_at": "2024-01-01T00:00:00Z"}
                for i in range(count)
            ]

        client = _client_with(
            _response(200, _page(PAGE_SIZE)),
            _response(200, _page(1, offset=PAGE_SIZE)),
        )

        repos = await client.fetch_repositories("octocat")

        self.assertEqual(len(repos), PAGE_SIZE + 1)
        self.assertEqual(client.session.get.call_count, 2)
        params = client.session.get.call_args_list[1].kwargs["params"]
        self.assertEqual(params["page"], 2)
        self.assertEqual(params["sort"], "pushed")

    async def test_profile_without_created_at_raises_data_unavailable(self) -> None:
        payload = {k: v for k, v in USER_PAYLOAD.items() if k != "created_at"}
        client = _client_with(_response(200, payload))

        with self.assertRaises(DataUnavailableException) as ctx:
            await client.fetch_profile("octocat")

        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    async def test_repository_without_created_at_raises_data_unavailable(self) -> None:
        client = _client_with(_response(200, [{"name": "broken", "stargazers_count": 3}]))

        with self.assertRaises(DataUnavailableException):
            await client.fetch_repositories("octocat")

    async def test_malformed_timestamp_raises_data_unavailable(self) -> None:
        client = _client_with(_response(200, dict(USER_PAYLOAD, created_at="yesterday")))

        with self.assertRaises(DataUnavailableException):
            await client.fetch_profile("octocat")


class TestEnrichmentFetches(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_readme_returns_raw_text(self) -> None:
        client = _client_with(_response(200, text="# Hello"))

        self.assertEqual(await client.fetch_readme("octocat", "hello"), "# Hello")

    async def test_missing_readme_is_none(self) -> None:
        client = _client_with(_response(404))

        self.assertIsNone(await client.fetch_readme("octocat", "hello"))

    async def test_readme_network_error_is_none(self) -> None:
        client = _client_with(side_effect=aiohttp.ClientConnectionError("reset"))

        self.assertIsNone(await client.fetch_readme("octocat", "hello"))

    async def test_fetch_root_listing_returns_names(self) -> None:
        client = _client_with(_response(200, [{"name": "src"}, {"name": "README.md"}]))

        self.assertEqual(await client.fetch_root_listing("octocat", "hello"), ["src", "README.md"])

    async def test_root_listing_failure_is_empty(self) -> None:
        client = _client_with(_response(403), side_effect=None)
        self.assertEqual(await client.fetch_root_listing("octocat", "hello"), [])

        client = _client_with(side_effect=aiohttp.ClientConnectionError("reset"))
        self.assertEqual(await client.fetch_root_listing("octocat", "hello"), [])
