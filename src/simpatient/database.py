"""
Case database.

SQLModel tables for the clinical cases a session can be bound to, and the
lookup used by session initialization. A reference is first matched against
OSCE stations and then against virtual patient simulations.
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from simpatient.errors import CaseNotFound
from simpatient.logger import get_logger

logger = get_logger(__name__)

IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OsceStation(SQLModel, table=True):
    __tablename__ = "osces"

    osce_id: str = Field(primary_key=True, max_length=36)
    chapter_id: str = Field(max_length=36)
    topic_id: str = Field(max_length=36)
    case_name: str = Field(max_length=255)
    case_description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    changed_at: Optional[datetime] = None
    created_by: Optional[str] = Field(default=None, max_length=36)
    changed_by: Optional[str] = Field(default=None, max_length=36)


class VirtualPatientSimulation(SQLModel, table=True):
    __tablename__ = "virtual_patient_simulations"

    id: str = Field(primary_key=True, max_length=36)
    title: Optional[str] = Field(default=None, max_length=255)
    case_description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class CaseDatabase:
    """Read access to the case tables.

    Args:
        database_url: SQLAlchemy URL (``sqlite://``, ``mysql+pymysql://...``).
        pool_size: Connection pool size for server databases.
        pool_recycle: Seconds after which pooled connections are recycled.
        create_tables: Create missing tables on startup.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 30,
        pool_recycle: int = 60,
        create_tables: bool = True,
    ):
        self.database_url = database_url
        engine_kwargs: dict = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in IN_MEMORY_SQLITE_URLS:
                # One shared connection, or every thread sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=0,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
            )

        self.engine = create_engine(database_url, **engine_kwargs)
        if create_tables:
            SQLModel.metadata.create_all(self.engine)
        logger.info("Case database connected successfully.")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            yield session

    def find_case_description(self, case_reference: str) -> str:
        """
        Look up a case description by OSCE id, then by simulation id.

        Returns:
            The stored description; an empty string when the row has none.

        Raises:
            CaseNotFound: If neither table has the reference.
        """
        with self._session() as session:
            station = session.exec(
                select(OsceStation).where(OsceStation.osce_id == case_reference)
            ).first()
            if station is not None:
                return station.case_description or ""

            simulation = session.exec(
                select(VirtualPatientSimulation).where(
                    VirtualPatientSimulation.id == case_reference
                )
            ).first()
            if simulation is not None:
                return simulation.case_description or ""

        raise CaseNotFound("OSCE case not found")

    async def resolve_case(self, case_reference: str) -> str:
        return await asyncio.to_thread(self.find_case_description, case_reference)

    def add(self, *rows: SQLModel) -> None:
        """Insert rows (seeding and tests)."""
        with self._session() as session:
            for row in rows:
                session.add(row)
            session.commit()

    def ping(self) -> bool:
        """Run a trivial query; raises if the database is unreachable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def dispose(self) -> None:
        self.engine.dispose()
