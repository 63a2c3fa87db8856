"""
Sync engine for Pixiv2Billfish.

Runs the tag and note pipelines over a fixed snapshot of Billfish files:
initialize (detect layout, build pools, warm caches), dispatch one task per
file and pipeline, drain the pools, then force-write every buffer and
regroup artist tags. Per-file failures only show up in the statistics; the
run as a whole fails only when it cannot start.
"""

import time
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from loguru import logger

from pixiv_billfish.core.config import Config
from pixiv_billfish.core.database import AssetStore, StoreError
from pixiv_billfish.core.models import FileRecord, NoteRecord, SchemaVariant
from pixiv_billfish.domain.pixiv import (
    IdentifierExtractionError,
    MetadataSource,
    PixivClient,
)

from .artist import regroup_artist_tags
from .exceptions import InitializationError
from .pool import WorkerPool
from .state import BufferThresholds, SyncState
from .stats import Statistics, StatsSnapshot


class RunState(Enum):
    """Lifecycle of a single run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class TaskOutcome(Enum):
    SUCCESS = "success"
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True)
class SyncReport:
    """Summary of a finished run."""

    variant: SchemaVariant
    files: int
    tag_stats: Optional[StatsSnapshot]
    note_stats: Optional[StatsSnapshot]
    regrouped_artist_tags: int = 0
    elapsed_seconds: float = 0.0
    unwritten: Dict[str, int] = field(default_factory=dict)


class SyncEngine:
    """One sync run against one Billfish library.

    Args:
        config: Loaded configuration
        store: Billfish database (opened on demand)
        source: Metadata source; a PixivClient is built from config if omitted
    """

    def __init__(
        self,
        config: Config,
        store: AssetStore,
        source: Optional[MetadataSource] = None,
    ):
        self.config = config
        self.store = store
        self.source = source
        self.state = RunState.IDLE
        self.variant: Optional[SchemaVariant] = None

        self.tag_stats = Statistics("Tags")
        self.note_stats = Statistics("Notes")

        self.sync_state: Optional[SyncState] = None
        self._tag_pool: Optional[WorkerPool] = None
        self._note_pool: Optional[WorkerPool] = None

    def run(self) -> SyncReport:
        """Execute the run.

        Raises:
            InitializationError: If the run could not start (nothing dispatched)
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Engine already used (state={self.state.value})")

        started = time.monotonic()
        try:
            files = self._initialize()
        except InitializationError as e:
            self.state = RunState.FAILED
            self._shutdown_pools()
            logger.error(f"Initialization failed: {e}")
            raise

        regrouped = 0
        try:
            if files:
                handles = self._dispatch(files)
                self._drain(handles)
                regrouped = self._finalize()
            else:
                logger.warning("No files to process")
        finally:
            self._shutdown_pools()

        self.state = RunState.DONE
        elapsed = time.monotonic() - started
        logger.info(f"Total time: {elapsed:.1f}s")

        return SyncReport(
            variant=self.variant,
            files=len(files),
            tag_stats=self.tag_stats.snapshot() if self.config.sync.write_tag else None,
            note_stats=self.note_stats.snapshot() if self.config.sync.write_note else None,
            regrouped_artist_tags=regrouped,
            elapsed_seconds=elapsed,
            unwritten={k: v for k, v in self.sync_state.pending_counts().items() if v},
        )

    # Lifecycle phases

    def _initialize(self) -> List[FileRecord]:
        self.state = RunState.INITIALIZING
        sync_config = self.config.sync

        try:
            self.config.validate()
        except ValueError as e:
            raise InitializationError(f"Invalid configuration: {e}") from e

        try:
            self.store.open()
            self.variant = self.store.detect_schema_variant()
        except StoreError as e:
            raise InitializationError(f"Billfish database unavailable: {e}") from e
        logger.info(f"Database layout: {self.variant.value}")

        if self.source is None:
            self.source = PixivClient(self.config.network)

        try:
            if sync_config.write_tag:
                self._tag_pool = WorkerPool("tag", sync_config.tag_thread_count)
                logger.info(f"Tag pool started: {sync_config.tag_thread_count} threads")
            if sync_config.write_note:
                self._note_pool = WorkerPool("note", sync_config.note_thread_count)
                logger.info(f"Note pool started: {sync_config.note_thread_count} threads")
        except (ValueError, RuntimeError) as e:
            raise InitializationError(f"Could not start worker pools: {e}") from e

        self.sync_state = SyncState(
            self.store,
            self.variant,
            BufferThresholds(
                tags=sync_config.batch_size_tag,
                associations=sync_config.batch_size_tag_join,
                notes=sync_config.batch_size_note,
            ),
        )

        try:
            logger.info("Loading cache...")
            self.sync_state.load()

            total = self.store.count_files()
            start = sync_config.start_file_num
            limit = sync_config.end_file_num or max(total - start, 0)
            logger.info(f"Library holds {total} files, processing {start} - {start + limit}")
            files = self.store.list_files(start, limit)
        except StoreError as e:
            raise InitializationError(f"Could not read Billfish database: {e}") from e

        logger.info(f"Loaded {len(files)} files")
        return files

    def _dispatch(self, files: List[FileRecord]) -> List[Future]:
        self.state = RunState.DISPATCHING
        total = len(files)
        handles: List[Future] = []

        for index, file in enumerate(files, start=1):
            if self._tag_pool:
                handles.append(self._tag_pool.submit(self._run_tag_task, file, index, total))
            if self._note_pool:
                handles.append(self._note_pool.submit(self._run_note_task, file, index, total))

        logger.info(f"Dispatched {len(handles)} tasks")
        return handles

    def _drain(self, handles: List[Future]) -> None:
        self.state = RunState.DRAINING
        logger.info("Waiting for all tasks to finish...")

        wait(handles)
        for pool in (self._tag_pool, self._note_pool):
            if pool:
                pool.await_quiescence()

        crashed = sum(1 for handle in handles if handle.exception() is not None)
        if crashed:
            logger.error(f"{crashed} tasks ended with an unhandled error")

    def _finalize(self) -> int:
        self.state = RunState.FINALIZING
        logger.info("Writing remaining data...")

        if not self.sync_state.flush_all():
            logger.error(f"Some rows could not be written: {self.sync_state.pending_counts()}")

        regrouped = 0
        if self.variant is SchemaVariant.HIERARCHICAL and self._tag_pool:
            try:
                regrouped = regroup_artist_tags(self.store)
            except StoreError as e:
                logger.error(f"Artist tag regrouping failed: {e}")

        if self._tag_pool:
            self.tag_stats.log_summary()
        if self._note_pool:
            self.note_stats.log_summary()
        return regrouped

    def _shutdown_pools(self) -> None:
        for pool in (self._tag_pool, self._note_pool):
            if pool:
                pool.shutdown()

    # Tasks

    @staticmethod
    def _record(stats: Statistics, outcome: TaskOutcome) -> None:
        if outcome is TaskOutcome.SUCCESS:
            stats.record_success()
        elif outcome is TaskOutcome.SKIP:
            stats.record_skip()
        else:
            stats.record_fail()

    def _identifier(self, file: FileRecord) -> str:
        pid = self.source.extract_identifier(file.name)
        if pid is None:
            raise IdentifierExtractionError(file.name)
        return pid

    def _run_tag_task(self, file: FileRecord, index: int, total: int) -> TaskOutcome:
        try:
            outcome = self._sync_tags(file, index, total)
        except IdentifierExtractionError as e:
            logger.debug(f"[{index}/{total}] {e}")
            outcome = TaskOutcome.FAIL
        except Exception:
            logger.exception(f"[{index}/{total}] Tag task failed: {file.name}")
            outcome = TaskOutcome.FAIL

        self._record(self.tag_stats, outcome)
        if outcome is TaskOutcome.SUCCESS:
            self.sync_state.flush_tags()
            self.sync_state.flush_associations()
        return outcome

    def _sync_tags(self, file: FileRecord, index: int, total: int) -> TaskOutcome:
        pid = self._identifier(file)

        if self.config.sync.skip_existing and self.sync_state.has_tags(file.id):
            logger.debug(f"[{index}/{total}] Already tagged, skipping: {file.name}")
            return TaskOutcome.SKIP

        tags = self.source.fetch_tags(pid)
        if not tags:
            logger.warning(f"[{index}/{total}] Failed to get tags: {file.name}")
            return TaskOutcome.FAIL

        resolution = self.sync_state.resolve_tags(file.id, tags)
        logger.info(
            f"[{index}/{total}] Tags done: {file.name} "
            f"(PID={pid}, {len(tags)} tags, {resolution.new_tags} new)"
        )
        return TaskOutcome.SUCCESS

    def _run_note_task(self, file: FileRecord, index: int, total: int) -> TaskOutcome:
        try:
            outcome = self._sync_note(file, index, total)
        except IdentifierExtractionError as e:
            logger.debug(f"[{index}/{total}] {e}")
            outcome = TaskOutcome.FAIL
        except Exception:
            logger.exception(f"[{index}/{total}] Note task failed: {file.name}")
            outcome = TaskOutcome.FAIL

        self._record(self.note_stats, outcome)
        if outcome is TaskOutcome.SUCCESS:
            self.sync_state.flush_notes()
        return outcome

    def _sync_note(self, file: FileRecord, index: int, total: int) -> TaskOutcome:
        pid = self._identifier(file)

        if self.config.sync.skip_existing and self.sync_state.has_note(file.id):
            logger.debug(f"[{index}/{total}] Already has a note, skipping: {file.name}")
            return TaskOutcome.SKIP

        info = self.source.fetch_description(pid)
        if info is None:
            logger.warning(f"[{index}/{total}] Failed to get artwork info: {file.name}")
            return TaskOutcome.FAIL

        note = NoteRecord(
            file_id=file.id,
            text=self.source.format_description(info),
            origin=self.source.origin_url(pid),
        )
        self.sync_state.append_note(note)
        logger.info(f"[{index}/{total}] Note done: {file.name} (PID={pid})")
        return TaskOutcome.SUCCESS
