"""
Shared in-memory sync state: tag cache, existence sets and write buffers.

All of it sits behind one lock. Tag resolution for a file (look up every
name, allocate ids for unknown ones, queue the rows) happens in a single
critical section, so two files that bring the same new tag always end up
with the same id.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterable, List, Optional, Set, TypeVar

from loguru import logger

from pixiv_billfish.core.database import AssetStore, PersistenceError
from pixiv_billfish.core.models import (
    ARTIST_PREFIX,
    Association,
    NoteRecord,
    SchemaVariant,
    TagRecord,
)

T = TypeVar("T")


@dataclass(frozen=True)
class BufferThresholds:
    """Pending rows needed before a non-forced flush writes a buffer."""

    tags: int = 20
    associations: int = 50
    notes: int = 10


@dataclass(frozen=True)
class TagResolution:
    """What resolving one file's tags queued."""

    new_tags: int
    associations: int


class WriteBuffer(Generic[T]):
    """Append-only pending rows. Not thread-safe; guarded by SyncState."""

    def __init__(self, name: str, threshold: int):
        self.name = name
        self.threshold = threshold
        self._items: List[T] = []

    def __len__(self) -> int:
        return len(self._items)

    def append(self, item: T) -> None:
        self._items.append(item)

    def should_flush(self, force: bool) -> bool:
        if not self._items:
            return False
        return force or len(self._items) >= self.threshold

    def items(self) -> List[T]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class SyncState:
    """Tag cache, existence sets and write buffers for one run."""

    def __init__(
        self,
        store: AssetStore,
        variant: SchemaVariant,
        thresholds: BufferThresholds = BufferThresholds(),
    ):
        self.store = store
        self.variant = variant
        self._lock = threading.Lock()

        self._tag_ids: Dict[str, int] = {}
        self._max_tag_id = 0
        self._tagged_files: Set[int] = set()
        self._noted_files: Set[int] = set()

        self.tag_buffer: WriteBuffer[TagRecord] = WriteBuffer("tags", thresholds.tags)
        self.association_buffer: WriteBuffer[Association] = WriteBuffer(
            "associations", thresholds.associations
        )
        self.note_buffer: WriteBuffer[NoteRecord] = WriteBuffer("notes", thresholds.notes)

    # Warm-up

    def load(self) -> None:
        """Mirror existing tags, tagged files and noted files from the store.

        Raises:
            StoreError: If the store cannot be read
        """
        tags = self.store.list_tags(self.variant)
        associations = self.store.list_associations()
        notes = self.store.list_notes()

        with self._lock:
            for tag in tags:
                self._register_tag(tag.name, tag.id)
            self._tagged_files.update(a.file_id for a in associations)
            self._noted_files.update(note.file_id for note in notes)

        logger.info(f"Loaded {len(self._tag_ids)} tags")
        logger.info(f"Loaded {len(self._tagged_files)} files with tags")
        logger.info(f"Loaded {len(self._noted_files)} files with notes")

    # Queries

    def has_tags(self, file_id: int) -> bool:
        with self._lock:
            return file_id in self._tagged_files

    def has_note(self, file_id: int) -> bool:
        with self._lock:
            return file_id in self._noted_files

    def tag_id(self, name: str) -> Optional[int]:
        with self._lock:
            return self._find_tag_id(name)

    @property
    def max_tag_id(self) -> int:
        with self._lock:
            return self._max_tag_id

    # Tag cache (caller holds the lock)

    def _register_tag(self, name: str, tag_id: int) -> None:
        self._tag_ids[name] = tag_id
        if tag_id > self._max_tag_id:
            self._max_tag_id = tag_id

    def _find_tag_id(self, name: str) -> Optional[int]:
        # Artist tags already regrouped under the parent lost their prefix
        if self.variant is SchemaVariant.HIERARCHICAL and name.startswith(ARTIST_PREFIX):
            tag_id = self._tag_ids.get(name[len(ARTIST_PREFIX):])
            if tag_id is not None:
                return tag_id
        return self._tag_ids.get(name)

    # Appends

    def resolve_tags(self, file_id: int, tag_names: Iterable[str]) -> TagResolution:
        """Queue associations for every tag name, creating unknown tags.

        New ids are strictly greater than any id seen so far and are cached
        immediately, in the same critical section as the lookups.
        """
        new_tags = 0
        associations = 0
        with self._lock:
            for name in tag_names:
                tag_id = self._find_tag_id(name)
                if tag_id is None:
                    tag_id = self._max_tag_id + 1
                    self.tag_buffer.append(TagRecord(id=tag_id, name=name))
                    self._register_tag(name, tag_id)
                    new_tags += 1
                self.association_buffer.append(Association(file_id=file_id, tag_id=tag_id))
                associations += 1
        return TagResolution(new_tags=new_tags, associations=associations)

    def append_note(self, note: NoteRecord) -> None:
        with self._lock:
            self.note_buffer.append(note)

    # Flushing

    def _write(
        self,
        buffer: WriteBuffer[T],
        force: bool,
        write: Callable[[List[T]], int],
        on_success: Optional[Callable[[List[T]], None]] = None,
    ) -> bool:
        """Hand a ready buffer to the store; caller holds the lock.

        On failure the rows stay queued for the next flush.

        Returns:
            False if the store rejected the batch, True otherwise
        """
        if not buffer.should_flush(force):
            return True

        batch = buffer.items()
        try:
            written = write(batch)
        except PersistenceError as e:
            logger.error(f"Failed to write {len(batch)} {buffer.name}, keeping them queued: {e}")
            return False

        buffer.clear()
        if on_success:
            on_success(batch)
        logger.debug(f"Wrote {written}/{len(batch)} {buffer.name}")
        return True

    def _flush_tags_locked(self, force: bool) -> bool:
        return self._write(
            self.tag_buffer,
            force,
            lambda batch: self.store.insert_tags(batch, self.variant),
        )

    def flush_tags(self, force: bool = False) -> bool:
        with self._lock:
            return self._flush_tags_locked(force)

    def flush_associations(self, force: bool = False) -> bool:
        """Write queued associations.

        If any of them points at a tag that is still queued, the tag buffer
        is written first, so a link never reaches the store before its tag.
        """
        with self._lock:
            if not self.association_buffer.should_flush(force):
                return True

            pending_tag_ids = {tag.id for tag in self.tag_buffer.items()}
            if pending_tag_ids and any(
                a.tag_id in pending_tag_ids for a in self.association_buffer.items()
            ):
                if not self._flush_tags_locked(force=True):
                    logger.warning("Holding back associations until their tags are written")
                    return False

            return self._write(
                self.association_buffer,
                force,
                self.store.insert_associations,
                lambda batch: self._tagged_files.update(a.file_id for a in batch),
            )

    def flush_notes(self, force: bool = False) -> bool:
        with self._lock:
            return self._write(
                self.note_buffer,
                force,
                self.store.insert_notes,
                lambda batch: self._noted_files.update(note.file_id for note in batch),
            )

    def flush_all(self) -> bool:
        """Force-write every buffer, tags first."""
        tags_ok = self.flush_tags(force=True)
        associations_ok = self.flush_associations(force=True)
        notes_ok = self.flush_notes(force=True)
        return tags_ok and associations_ok and notes_ok

    def pending_counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "tags": len(self.tag_buffer),
                "associations": len(self.association_buffer),
                "notes": len(self.note_buffer),
            }
