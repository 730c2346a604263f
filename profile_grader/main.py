import argparse
import asyncio
import logging
import sys
from typing import Optional

from profile_grader.application.analysis_service import AnalysisService
from profile_grader.config import Settings
from profile_grader.domain.exceptions import DatabaseException, DataUnavailableException
from profile_grader.domain.models import BREAKDOWN_MAXIMA, AnalysisResult
from profile_grader.infrastructure.database import PostgresRepository
from profile_grader.infrastructure.github_client import GitHubRestClient, parse_handle
from profile_grader.infrastructure.narrative import FACTOR_LABELS, NarrativeGenerator

logger = logging.getLogger(__name__)


def render_report(result: AnalysisResult) -> str:
    score = result.score
    narrative = result.narrative
    lines = [
        f"{result.profile.login}: {score.overall}/100 ({narrative.verdict})",
        "",
    ]
    for name, limit in BREAKDOWN_MAXIMA.items():
        lines.append(f"  {FACTOR_LABELS[name]:<16} {getattr(score.breakdown, name):>5.1f} / {limit}")
    for penalty in score.penalties:
        lines.append(f"  Penalty {penalty.code}: -{penalty.points} ({penalty.reason})")
    lines.append("")
    lines.append(narrative.summary)
    for title, items in (
        ("Strengths", narrative.strengths),
        ("Red flags", narrative.red_flags),
        ("Improvements", narrative.improvements),
    ):
        lines.append("")
        lines.append(f"{title}:")
        lines.extend(f"  - {item}" for item in items)
    return "\n".join(lines)


async def open_report_store(database_url: Optional[str]) -> Optional[PostgresRepository]:
    """Connects the report store and makes sure its table exists. Returns None when storage is off or unusable."""
    if not database_url:
        return None
    report_store = PostgresRepository(db_url=database_url)
    try:
        await report_store.create_schema()
    except DatabaseException as e:
        logger.error(f"Report storage disabled: {e}")
        return None
    return report_store


async def run(handle: str, settings: Settings, as_json: bool = False) -> None:
    report_store = await open_report_store(settings.database_url)
    narrative_generator = NarrativeGenerator(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.openai_model,
    )

    async with GitHubRestClient(token=settings.github_token) as github_client:
        service = AnalysisService(
            github_client=github_client,
            narrative_generator=narrative_generator,
            report_store=report_store,
        )
        result = await service.analyze(handle)

    if as_json:
        print(result.model_dump_json(by_alias=True, indent=2))
    else:
        print(render_report(result))


def main() -> None:
    parser = argparse.ArgumentParser(description="Score a GitHub profile on a 0-100 scale.")
    parser.add_argument("profile", help="GitHub handle or profile URL")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    args = parser.parse_args()

    settings = Settings.from_env()

    # Configure logging
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    try:
        handle = parse_handle(args.profile)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(2)

    if not settings.github_token:
        logger.warning("GITHUB_TOKEN is not set. Unauthenticated requests are heavily rate limited.")

    try:
        asyncio.run(run(handle, settings, as_json=args.json))
    except KeyboardInterrupt:
        logger.info("Analysis interrupted by user. Exiting gracefully.")
        sys.exit(130)
    except DataUnavailableException as e:
        logger.error(f"Could not analyze '{handle}': {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
