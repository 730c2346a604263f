from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.dialects.postgresql import insert, JSONB
from sqlalchemy import Table, Column, String, Integer, DateTime, MetaData, text

from profile_grader.domain.exceptions import DatabaseException
from profile_grader.domain.models import AnalysisResult

# SQLAlchemy core Table definition
metadata = MetaData()
scores_table = Table(
    'profile_scores', metadata,
    Column('login', String, primary_key=True),
    Column('overall', Integer, nullable=False),
    Column('verdict', String, nullable=False),
    Column('breakdown', JSONB, nullable=False),
    Column('penalties', JSONB, server_default=text("'[]'::jsonb")),
    Column('scored_at', DateTime(timezone=True), server_default=text('NOW()')),
)

class PostgresRepository:
    """
    Repository class for persisting profile score reports in PostgreSQL.
    Keeps the latest report per login.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def create_schema(self) -> None:
        """Creates the `profile_scores` table if it does not exist yet."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Failed to create schema: {e}") from e

    async def upsert_score(self, result: AnalysisResult) -> None:
        """
        Inserts or replaces the stored report for the analysed login.

        Args:
            result (AnalysisResult): The finished analysis to persist.
        """
        values = {
            'login': result.profile.login,
            'overall': result.score.overall,
            'verdict': result.narrative.verdict,
            'breakdown': result.score.breakdown.model_dump(by_alias=True),
            'penalties': [p.model_dump() for p in result.score.penalties],
        }

        try:
            async with self.engine.begin() as conn:
                stmt = insert(scores_table).values(values)

                upsert_stmt = stmt.on_conflict_do_update(
                    index_elements=['login'],
                    set_={
                        'overall': stmt.excluded.overall,
                        'verdict': stmt.excluded.verdict,
                        'breakdown': stmt.excluded.breakdown,
                        'penalties': stmt.excluded.penalties,
                        'scored_at': text('NOW()'),
                    },
                )

                await conn.execute(upsert_stmt)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Failed to store score for '{result.profile.login}': {e}") from e
