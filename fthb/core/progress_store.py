"""Storage for per-user milestone records.

Stores expose milestone-scoped updates only: a caller hands over a function
that maps the current state of *one* milestone to its next state, and the
store applies it atomically and recomputes the overall progress. There is no
"save whole record" operation, so two features advancing different milestones
for the same user cannot overwrite each other.

Two implementations:

* :class:`InMemoryProgressStore` - a per-user ``threading.Lock`` around each
  update. Used by tests and short-lived CLI runs.
* :class:`SqlProgressStore` - SQLAlchemy Core, one row per (user, milestone)
  with a ``version`` column. Each update first locks the user's parent row,
  then does a compare-and-set on the milestone row, retrying when another
  writer got there first.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from fthb.core.errors import ConcurrencyError, ProgressNotFoundError
from fthb.core.milestones import (
    Milestone,
    MilestoneRecord,
    MilestoneState,
    MilestoneStatus,
    compute_overall_progress,
    load_payload,
    replace_milestone,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]
#: Maps (record as read, current milestone state) to the next milestone state.
MilestoneChange = Callable[[MilestoneRecord, MilestoneState], MilestoneState]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ProgressStore(Protocol):
    def create(self, record: MilestoneRecord) -> bool:
        """Insert ``record`` unless one exists for the user; True when inserted."""

    def get(self, user_id: str) -> Optional[MilestoneRecord]:
        ...

    def update_milestone(self, user_id: str, milestone: Milestone, change: MilestoneChange) -> MilestoneRecord:
        """Apply ``change`` to one milestone atomically and return the new record.

        Raises:
            ProgressNotFoundError: When the user has no record.
        """

    def list_records(self, limit: int = 50) -> List[MilestoneRecord]:
        ...


class InMemoryProgressStore:
    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._records: Dict[str, MilestoneRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, user_id: str, create: bool = False) -> Optional[threading.Lock]:
        # Only created users get a lock.
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None and create:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def create(self, record: MilestoneRecord) -> bool:
        with self._lock_for(record.user_id, create=True):
            if record.user_id in self._records:
                return False
            self._records[record.user_id] = record
            return True

    def get(self, user_id: str) -> Optional[MilestoneRecord]:
        with self._guard:
            return self._records.get(user_id)

    def update_milestone(self, user_id: str, milestone: Milestone, change: MilestoneChange) -> MilestoneRecord:
        lock = self._lock_for(user_id)
        if lock is None:
            raise ProgressNotFoundError(user_id)
        with lock:
            record = self._records.get(user_id)
            if record is None:
                raise ProgressNotFoundError(user_id)
            current = record.milestones[milestone]
            new_state = change(record, current)
            if new_state == current:
                return record
            record = replace_milestone(record, milestone, new_state, self._clock())
            self._records[user_id] = record
            return record

    def list_records(self, limit: int = 50) -> List[MilestoneRecord]:
        with self._guard:
            records = list(self._records.values())
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records[: max(0, int(limit))]


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

metadata = sa.MetaData()

progress_records = sa.Table(
    "progress_records",
    metadata,
    sa.Column("user_id", sa.String(128), primary_key=True),
    sa.Column("overall_progress", sa.Integer, nullable=False, default=0),
    sa.Column("quiz_response_id", sa.String(64)),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
)

milestone_states = sa.Table(
    "milestone_states",
    metadata,
    sa.Column("user_id", sa.String(128), sa.ForeignKey("progress_records.user_id"), primary_key=True),
    sa.Column("milestone", sa.Integer, primary_key=True),
    sa.Column("status", sa.String(16), nullable=False),
    sa.Column("data", sa.JSON(none_as_null=True)),
    sa.Column("completed_at", sa.DateTime),
    sa.Column("version", sa.Integer, nullable=False, default=0),
)


def _to_db_time(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Naive UTC, the form SQLite's DATETIME round-trips."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value


def lock_record_stmt(user_id: str) -> sa.Select:
    """Row lock on a user's parent record.

    Taken first in every milestone update so that writers to different
    milestones of one user recount ``overall_progress`` one after another.
    SQLite drops ``FOR UPDATE``; there ``BEGIN IMMEDIATE`` already serializes
    writers.
    """
    return sa.select(progress_records.c.user_id).where(progress_records.c.user_id == user_id).with_for_update()


def _begin_immediate(engine: Engine) -> Engine:
    # pysqlite defers BEGIN until the first write, so two writers can each hold
    # a read lock and deadlock on upgrade. Take the write lock up front instead.
    @sa.event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @sa.event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_store_engine(url: str) -> Engine:
    """Engine for ``url``.

    In-memory SQLite keeps a single shared connection, so it suits one thread
    at a time; use a file or server database for concurrent writers.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return _begin_immediate(
            sa.create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
        )
    if url.startswith("sqlite"):
        return _begin_immediate(sa.create_engine(url, connect_args={"timeout": 30}))
    return sa.create_engine(url, pool_pre_ping=True)


class SqlProgressStore:
    def __init__(self, engine: Engine | str, clock: Clock = utcnow, max_retries: int = 5) -> None:
        self.engine = create_store_engine(engine) if isinstance(engine, str) else engine
        self._clock = clock
        self._max_retries = max(1, int(max_retries))
        metadata.create_all(self.engine)

    def create(self, record: MilestoneRecord) -> bool:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    progress_records.insert().values(
                        user_id=record.user_id,
                        overall_progress=record.overall_progress,
                        quiz_response_id=record.quiz_response_id,
                        created_at=_to_db_time(record.created_at),
                        updated_at=_to_db_time(record.updated_at),
                    )
                )
                conn.execute(
                    milestone_states.insert(),
                    [
                        {
                            "user_id": record.user_id,
                            "milestone": int(m),
                            "status": state.status.value,
                            "data": state.data.model_dump(mode="json") if state.data is not None else None,
                            "completed_at": _to_db_time(state.completed_at),
                            "version": 0,
                        }
                        for m, state in record.milestones.items()
                    ],
                )
        except IntegrityError:
            logger.debug("progress record for %s already exists", record.user_id)
            return False
        return True

    def _load(self, conn: Connection, user_id: str) -> Optional[Tuple[MilestoneRecord, Dict[Milestone, int]]]:
        head = conn.execute(sa.select(progress_records).where(progress_records.c.user_id == user_id)).mappings().first()
        if head is None:
            return None
        rows = conn.execute(sa.select(milestone_states).where(milestone_states.c.user_id == user_id)).mappings().all()
        states: Dict[Milestone, MilestoneState] = {}
        versions: Dict[Milestone, int] = {}
        for row in rows:
            m = Milestone(row["milestone"])
            states[m] = MilestoneState(
                status=MilestoneStatus(row["status"]),
                data=load_payload(row["data"]),
                completed_at=_from_db_time(row["completed_at"]),
            )
            versions[m] = row["version"]
        record = MilestoneRecord(
            user_id=head["user_id"],
            milestones=states,
            overall_progress=head["overall_progress"],
            created_at=_from_db_time(head["created_at"]),
            updated_at=_from_db_time(head["updated_at"]),
            quiz_response_id=head["quiz_response_id"],
        )
        return record, versions

    def get(self, user_id: str) -> Optional[MilestoneRecord]:
        with self.engine.connect() as conn:
            loaded = self._load(conn, user_id)
        return loaded[0] if loaded else None

    def update_milestone(self, user_id: str, milestone: Milestone, change: MilestoneChange) -> MilestoneRecord:
        for attempt in range(1, self._max_retries + 1):
            with self.engine.begin() as conn:
                if conn.execute(lock_record_stmt(user_id)).first() is None:
                    raise ProgressNotFoundError(user_id)
                record, versions = self._load(conn, user_id)  # type: ignore[misc]
                current = record.milestones[milestone]
                new_state = change(record, current)
                if new_state == current:
                    return record

                version = versions[milestone]
                result = conn.execute(
                    milestone_states.update()
                    .where(milestone_states.c.user_id == user_id)
                    .where(milestone_states.c.milestone == int(milestone))
                    .where(milestone_states.c.version == version)
                    .values(
                        status=new_state.status.value,
                        data=new_state.data.model_dump(mode="json") if new_state.data is not None else None,
                        completed_at=_to_db_time(new_state.completed_at),
                        version=version + 1,
                    )
                )
                if result.rowcount != 1:
                    logger.debug(
                        "milestone %s for %s changed concurrently (attempt %d/%d)",
                        milestone.key, user_id, attempt, self._max_retries,
                    )
                    continue

                completed = conn.execute(
                    sa.select(sa.func.count())
                    .select_from(milestone_states)
                    .where(milestone_states.c.user_id == user_id)
                    .where(milestone_states.c.status == MilestoneStatus.COMPLETED.value)
                ).scalar_one()
                conn.execute(
                    progress_records.update()
                    .where(progress_records.c.user_id == user_id)
                    .values(overall_progress=compute_overall_progress(completed), updated_at=_to_db_time(self._clock()))
                )
                updated = self._load(conn, user_id)
            return updated[0]  # type: ignore[index]

        logger.error("giving up on milestone %s for %s after %d attempts", milestone.key, user_id, self._max_retries)
        raise ConcurrencyError(f"milestone {milestone.key} for {user_id!r} kept changing; retry later")

    def list_records(self, limit: int = 50) -> List[MilestoneRecord]:
        with self.engine.connect() as conn:
            user_ids = conn.execute(
                sa.select(progress_records.c.user_id)
                .order_by(progress_records.c.updated_at.desc())
                .limit(max(0, int(limit)))
            ).scalars().all()
            loaded = [self._load(conn, uid) for uid in user_ids]
        return [item[0] for item in loaded if item is not None]
