import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from profile_grader.infrastructure.narrative import DEFAULT_BASE_URL, DEFAULT_MODEL


@dataclass(frozen=True)
class Settings:
    github_token: Optional[str] = None
    database_url: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = DEFAULT_BASE_URL
    openai_model: str = DEFAULT_MODEL
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # Load environment variables from .env file
        load_dotenv()

        return cls(
            github_token=os.getenv("GITHUB_TOKEN") or None,
            database_url=os.getenv("DATABASE_URL") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL),
            openai_model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            log_level=os.getenv("GRADER_LOG_LEVEL", "INFO").upper(),
        )
