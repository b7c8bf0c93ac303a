"""Repository for the reindex run ledger."""
import datetime
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from notegraph_mcp.exceptions import ErrorCode, NoteGraphError
from notegraph_mcp.models.db_models import DBIndexRun
from notegraph_mcp.models.schema import (
    IndexRun,
    IndexRunStatus,
    ReindexMode,
    ensure_timezone_aware,
    utc_now,
)

logger = logging.getLogger(__name__)


class IndexRunRepository:
    """Append-only ledger of reindex batches.

    Rows are created as ``running`` and moved once to ``success`` or
    ``failed``. Consumers trust the latest ``success`` row.
    """

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_model(row: DBIndexRun) -> IndexRun:
        return IndexRun(
            id=row.id,
            started_at=ensure_timezone_aware(row.started_at),
            finished_at=ensure_timezone_aware(row.finished_at),
            status=IndexRunStatus(row.status),
            mode=ReindexMode(row.mode),
            error=row.error,
        )

    def start(
        self,
        mode: ReindexMode = ReindexMode.INCREMENTAL,
        started_at: Optional[datetime.datetime] = None,
    ) -> IndexRun:
        """Append a ``running`` row."""
        row = DBIndexRun(
            started_at=started_at or utc_now(),
            status=IndexRunStatus.RUNNING.value,
            mode=mode.value,
        )
        self.session.add(row)
        self.session.flush()
        return self._to_model(row)

    def finish(
        self,
        run_id: int,
        status: IndexRunStatus,
        finished_at: Optional[datetime.datetime] = None,
        error: Optional[str] = None,
    ) -> IndexRun:
        """Close a run with its final status.

        Raises:
            NoteGraphError: If the run does not exist.
        """
        if status == IndexRunStatus.RUNNING:
            raise ValueError("A run can only be finished as success or failed")
        row = self.session.get(DBIndexRun, run_id)
        if row is None:
            raise NoteGraphError(
                f"Index run {run_id} not found",
                code=ErrorCode.INDEX_RUN_NOT_FOUND,
                details={"run_id": run_id},
            )
        row.status = status.value
        row.finished_at = finished_at or utc_now()
        row.error = error[:2000] if error else None
        self.session.flush()
        return self._to_model(row)

    def get(self, run_id: int) -> Optional[IndexRun]:
        row = self.session.get(DBIndexRun, run_id)
        return self._to_model(row) if row else None

    def latest_success(self) -> Optional[IndexRun]:
        """The most recent successful run, if any."""
        row = self.session.scalar(
            select(DBIndexRun)
            .where(DBIndexRun.status == IndexRunStatus.SUCCESS.value)
            .order_by(DBIndexRun.id.desc())
            .limit(1)
        )
        return self._to_model(row) if row else None

    def recent(self, limit: int = 10) -> List[IndexRun]:
        """Most recent runs first."""
        rows = self.session.scalars(
            select(DBIndexRun).order_by(DBIndexRun.id.desc()).limit(limit)
        ).all()
        return [self._to_model(row) for row in rows]
