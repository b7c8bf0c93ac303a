"""Reindex engine: keeps the persisted link graph in step with note contents.

A batch compares each note's content hash against the hash recorded when its
links were last indexed. Changed (or never indexed) notes get their outgoing
edges deleted, re-extracted, re-resolved and re-inserted. Everything a batch
writes goes through a single unit of work, so readers see either the previous
graph or the new one.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from notegraph_mcp.config import config
from notegraph_mcp.exceptions import ReindexError, ReindexInProgressError
from notegraph_mcp.models.schema import (
    IndexRunStatus,
    Note,
    ReindexMode,
    ReindexSummary,
    utc_now,
)
from notegraph_mcp.observability import timed_operation
from notegraph_mcp.services.link_extractor import extract_wiki_links
from notegraph_mcp.services.title_resolver import TitleResolver
from notegraph_mcp.storage.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# Stores with a reindex currently in flight in this process
_active_stores: Set[str] = set()
_active_lock = threading.Lock()


@contextmanager
def single_flight(store_key: str) -> Iterator[None]:
    """Allow one reindex at a time per store within this process.

    Raises:
        ReindexInProgressError: If a reindex against ``store_key`` is running.
    """
    with _active_lock:
        if store_key in _active_stores:
            raise ReindexInProgressError(store_key)
        _active_stores.add(store_key)
    try:
        yield
    finally:
        with _active_lock:
            _active_stores.discard(store_key)


@dataclass
class _BatchCounters:
    notes_total: int = 0
    notes_indexed: int = 0
    notes_skipped: int = 0
    links_inserted: int = 0
    links_deleted: int = 0
    links_relinked: int = 0


class ReindexService:
    """Runs reindex batches against one store.

    Args:
        uow_factory: Zero-argument callable returning a fresh UnitOfWork.
        store_key: Identity of the store, used by the single-flight guard.
        record_runs: Whether batches are recorded in the run ledger
            (defaults to ``config.record_runs``).
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        store_key: str = "default",
        record_runs: Optional[bool] = None,
    ):
        self.uow_factory = uow_factory
        self.store_key = store_key
        self.record_runs = config.record_runs if record_runs is None else record_runs

    def reindex(self, full: bool = False) -> ReindexSummary:
        """Run one reindex batch.

        Args:
            full: Ignore recorded hashes and re-extract every note.

        Returns:
            Counters and timing of the committed batch.

        Raises:
            ReindexInProgressError: Another batch is running on this store.
            ReindexError: Storage failed; nothing from the batch was committed
                and the run is marked failed.
        """
        mode = ReindexMode.FULL if full else ReindexMode.INCREMENTAL
        with single_flight(self.store_key):
            with timed_operation("reindex", mode=mode.value) as op:
                started_at = utc_now()
                run_id = self._start_run(mode, started_at)
                try:
                    counters = self._run_batch(full)
                except Exception as e:
                    self._fail_run(run_id, e)
                    if isinstance(e, SQLAlchemyError):
                        raise ReindexError(
                            "Reindex failed and was rolled back",
                            run_id=run_id,
                            original_error=e,
                        ) from e
                    raise

                finished_at = utc_now()
                try:
                    self._finish_run(run_id, IndexRunStatus.SUCCESS)
                except SQLAlchemyError as e:
                    # The batch is already committed; only the ledger row is stale
                    logger.error(f"Could not mark index run {run_id} as successful: {e}")
                summary = ReindexSummary(
                    started_at=started_at,
                    finished_at=finished_at,
                    duration_ms=(finished_at - started_at).total_seconds() * 1000,
                    notes_total=counters.notes_total,
                    notes_indexed=counters.notes_indexed,
                    notes_skipped=counters.notes_skipped,
                    links_inserted=counters.links_inserted,
                    links_deleted=counters.links_deleted,
                    links_relinked=counters.links_relinked,
                    run_id=run_id,
                    mode=mode,
                )
                op["notes_indexed"] = counters.notes_indexed
                op["links_inserted"] = counters.links_inserted

        logger.info(
            f"Reindex ({mode.value}) finished: {summary.notes_indexed}/"
            f"{summary.notes_total} notes indexed, {summary.links_inserted} links "
            f"inserted, {summary.links_deleted} deleted, "
            f"{summary.links_relinked} relinked"
        )
        return summary

    def _start_run(self, mode: ReindexMode, started_at) -> Optional[int]:
        if not self.record_runs:
            return None
        try:
            with self.uow_factory() as uow:
                run = uow.runs.start(mode, started_at)
                uow.commit()
        except SQLAlchemyError as e:
            raise ReindexError("Could not record reindex start", original_error=e) from e
        return run.id

    def _finish_run(self, run_id: Optional[int], status: IndexRunStatus, error: Optional[str] = None) -> None:
        if run_id is None:
            return
        with self.uow_factory() as uow:
            uow.runs.finish(run_id, status, error=error)
            uow.commit()

    def _fail_run(self, run_id: Optional[int], error: Exception) -> None:
        logger.error(f"Reindex batch failed: {error}")
        try:
            self._finish_run(run_id, IndexRunStatus.FAILED, error=str(error))
        except SQLAlchemyError as e:
            # The batch error is the one raised to the caller
            logger.error(f"Could not mark index run {run_id} as failed: {e}")

    def _run_batch(self, full: bool) -> _BatchCounters:
        with self.uow_factory() as uow:
            notes = uow.notes.get_all()
            indexed_hashes = {} if full else uow.link_states.get_hashes()
            resolver = TitleResolver(notes)
            counters = _BatchCounters(notes_total=len(notes))
            indexed_at = utc_now()

            skipped: List[Note] = []
            for note in notes:
                if indexed_hashes.get(note.id) == note.content_hash:
                    counters.notes_skipped += 1
                    skipped.append(note)
                    continue

                counters.links_deleted += uow.links.delete_outgoing(note.id)
                links = resolver.resolve(note.id, extract_wiki_links(note.content))
                counters.links_inserted += uow.links.insert_many(links)
                uow.link_states.upsert(note.id, note.content_hash, indexed_at)
                counters.notes_indexed += 1

            counters.links_relinked = self._relink(uow, resolver, skipped)
            uow.commit()
        return counters

    @staticmethod
    def _relink(uow: UnitOfWork, resolver: TitleResolver, skipped: List[Note]) -> int:
        """Re-point edges of unchanged notes whose targets appeared, vanished or moved.

        Edge membership stays as extracted; only ``to_note_id``/``to_path``
        change.
        """
        if not skipped:
            return 0
        skipped_ids = {note.id for note in skipped}
        relinked = 0
        for link in uow.links.get_all():
            if link.from_note_id not in skipped_ids:
                continue
            to_note_id, to_path = resolver.target_of(link.to_title)
            if (to_note_id, to_path) != (link.to_note_id, link.to_path):
                uow.links.update_target(link.id, to_note_id, to_path)
                relinked += 1
        if relinked:
            logger.debug(f"Relinked {relinked} edges of unchanged notes")
        return relinked
