from datetime import datetime
from typing import Any, Dict, List, Optional
from profile_grader.domain.models import Profile, Repository


def _parse_timestamp(raw_date: Optional[str]) -> Optional[datetime]:
    if not raw_date:
        return None
    return datetime.fromisoformat(raw_date.replace("Z", "+00:00"))


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON responses into domain models.
    """

    @staticmethod
    def to_profile(raw_user: Dict[str, Any]) -> Profile:
        """
        Transforms a `GET /users/{login}` payload into a Profile.

        Args:
            raw_user (Dict[str, Any]): The raw JSON object from GitHub's REST response.

        Returns:
            Profile: The immutable profile snapshot.
        """
        created_at = _parse_timestamp(raw_user.get('created_at'))
        if created_at is None:
            raise ValueError("created_at is required to build Profile.")

        return Profile(
            login=raw_user.get('login', ''),
            id=raw_user.get('id') or 0,
            name=raw_user.get('name'),
            bio=raw_user.get('bio'),
            avatar_url=raw_user.get('avatar_url'),
            public_repos=raw_user.get('public_repos') or 0,
            followers=raw_user.get('followers') or 0,
            following=raw_user.get('following') or 0,
            created_at=created_at,
            blog=raw_user.get('blog') or None,
        )

    @staticmethod
    def to_repository(raw_repo: Dict[str, Any]) -> Repository:
        """
        Transforms one element of `GET /users/{login}/repos` into a Repository.

        Brand-new repositories can come back without `pushed_at`; the creation
        time stands in for it so recency ranking still works.
        """
        created_at = _parse_timestamp(raw_repo.get('created_at'))
        if created_at is None:
            raise ValueError("created_at is required to build Repository.")
        updated_at = _parse_timestamp(raw_repo.get('updated_at')) or created_at
        pushed_at = _parse_timestamp(raw_repo.get('pushed_at')) or created_at

        return Repository(
            name=raw_repo.get('name', ''),
            full_name=raw_repo.get('full_name', ''),
            description=raw_repo.get('description'),
            language=raw_repo.get('language'),
            stars=raw_repo.get('stargazers_count') or 0,
            forks=raw_repo.get('forks_count') or 0,
            homepage=raw_repo.get('homepage') or None,
            size=raw_repo.get('size') or 0,
            is_fork=bool(raw_repo.get('fork', False)),
            is_archived=bool(raw_repo.get('archived', False)),
            has_issues_enabled=bool(raw_repo.get('has_issues', True)),
            topics=tuple(raw_repo.get('topics') or ()),
            created_at=created_at,
            updated_at=updated_at,
            pushed_at=pushed_at,
        )

    @staticmethod
    def to_file_names(raw_contents: Any) -> List[str]:
        """Extracts entry names from a `GET /repos/{owner}/{repo}/contents` payload, keeping order and case."""
        if not isinstance(raw_contents, list):
            return []
        return [
            entry['name'] for entry in raw_contents
            if isinstance(entry, dict) and isinstance(entry.get('name'), str)
        ]
