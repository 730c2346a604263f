import aiohttp
import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from profile_grader.domain.exceptions import (
    DataUnavailableException,
    ProfileNotFoundException,
    RateLimitExceededException,
)
from profile_grader.domain.models import Profile, Repository
from profile_grader.infrastructure.acl import GitHubTranslator

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
RAW_MEDIA_TYPE = "application/vnd.github.raw+json"
PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 3
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)
MAX_RETRIES = 4
SECONDARY_LIMIT_WAIT = 60
# Limit concurrent connections to avoid overwhelming GitHub's servers
CONNECTOR_LIMIT = 10
RETRYABLE_STATUS = {500, 502, 503, 504}


def parse_handle(value: str) -> str:
    """
    Extracts a GitHub login from either a bare handle or a profile/repository URL.

    `https://github.com/octocat/hello-world?tab=readme` -> `octocat`
    """
    raw = (value or "").strip()
    if "github.com/" in raw:
        raw = raw.split("github.com/", 1)[1]
    handle = raw.split("/")[0].split("?")[0].split("#")[0].strip().lstrip("@")
    if not handle:
        raise ValueError(f"Cannot extract a GitHub handle from {value!r}.")
    return handle


def _format_reset(raw_reset: Optional[str]) -> str:
    if not raw_reset or not raw_reset.isdigit():
        return "unknown"
    reset_time = datetime.fromtimestamp(int(raw_reset), tz=timezone.utc)
    return reset_time.isoformat().replace("+00:00", "Z")


class GitHubRestClient:
    """
    Client for the GitHub REST API.
    Profile and repository-list requests are retried and mapped onto the domain
    exception taxonomy; README and listing requests never raise.

    Must be used as an async context manager so one session is shared by every
    request of a run.
    """

    def __init__(self, token: Optional[str] = None, api_url: str = API_URL, max_pages: int = DEFAULT_MAX_PAGES):
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "github-profile-grader",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.api_url = api_url.rstrip("/")
        self.max_pages = max_pages
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "GitHubRestClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT),
            headers=self.headers,
            timeout=REQUEST_TIMEOUT,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("GitHubRestClient must be entered with 'async with' before use.")
        return self._session

    async def fetch_profile(self, handle: str) -> Profile:
        """Fetches the user profile. Raises a DataUnavailableException subclass on failure."""
        data = await self._get_json(f"/users/{handle}", handle)
        if not isinstance(data, dict):
            raise DataUnavailableException(f"Unexpected profile payload for '{handle}'.")
        try:
            return GitHubTranslator.to_profile(data)
        except ValueError as e:
            raise DataUnavailableException(f"Unreadable profile payload for '{handle}': {e}") from e

    async def fetch_repositories(self, handle: str) -> List[Repository]:
        """
        Fetches the public repositories of a user, most recently pushed first.

        Follows pagination while full pages come back, up to `max_pages` pages.
        """
        repositories: List[Repository] = []
        for page in range(1, self.max_pages + 1):
            params = {"per_page": PAGE_SIZE, "sort": "pushed", "page": page}
            data = await self._get_json(f"/users/{handle}/repos", handle, params=params)
            if not isinstance(data, list):
                raise DataUnavailableException(f"Unexpected repository payload for '{handle}'.")

            try:
                repositories.extend(GitHubTranslator.to_repository(raw) for raw in data if raw)
            except ValueError as e:
                raise DataUnavailableException(f"Unreadable repository payload for '{handle}': {e}") from e
            if len(data) < PAGE_SIZE:
                break

        logger.info(f"Fetched {len(repositories)} repositories for '{handle}'.")
        return repositories

    async def fetch_readme(self, owner: str, repo_name: str) -> Optional[str]:
        """Returns the raw README text, or None on any failure."""
        url = f"{self.api_url}/repos/{owner}/{repo_name}/readme"
        try:
            async with self.session.get(url, headers={"Accept": RAW_MEDIA_TYPE}) as response:
                if response.status != 200:
                    logger.debug(f"No README for {owner}/{repo_name} (HTTP {response.status}).")
                    return None
                text = await response.text()
                return text or None
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            logger.debug(f"README fetch failed for {owner}/{repo_name}: {e}")
            return None

    async def fetch_root_listing(self, owner: str, repo_name: str) -> List[str]:
        """Returns the names of the entries in the repository root, or [] on any failure."""
        url = f"{self.api_url}/repos/{owner}/{repo_name}/contents"
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    logger.debug(f"No root listing for {owner}/{repo_name} (HTTP {response.status}).")
                    return []
                data = await response.json()
                return GitHubTranslator.to_file_names(data)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Root listing fetch failed for {owner}/{repo_name}: {e}")
            return []

    async def _get_json(self, path: str, handle: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_url}{path}"

        for attempt in range(MAX_RETRIES):
          try:
            async with self.session.get(url, params=params) as response:
                if response.status == 404:
                    raise ProfileNotFoundException(handle)

                if response.status in {403, 429}:
                    remaining = response.headers.get('X-RateLimit-Remaining')
                    if remaining == '0':
                        raise RateLimitExceededException(
                            reset_at=_format_reset(response.headers.get('X-RateLimit-Reset'))
                        )
                    # Secondary rate limit (abuse detection)
                    retry_after = response.headers.get('Retry-After')
                    sleep_time = int(retry_after) if retry_after and retry_after.isdigit() else SECONDARY_LIMIT_WAIT
                    logger.warning(f"Secondary rate limit ({response.status}). Sleeping {sleep_time}s...")
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status in RETRYABLE_STATUS:
                    sleep_time = (2 ** attempt) + random.uniform(0, 1)
                    logger.warning(
                        f"Server error ({response.status}) for {path}, "
                        f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                    )
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status >= 400:
                    raise DataUnavailableException(f"GitHub API error ({response.status}) for {path}.")

                return await response.json()

          except (aiohttp.ClientError, asyncio.TimeoutError) as e:
              sleep_time = (2 ** attempt) + random.uniform(0, 1)
              logger.warning(
                  f"Request failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. "
                  f"Retrying in {sleep_time:.1f}s..."
              )
              await asyncio.sleep(sleep_time)

        raise DataUnavailableException(f"Failed to fetch {path} after {MAX_RETRIES} attempts.")
