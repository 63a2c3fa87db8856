"""
Billfish row types.

Plain records exchanged between the sync engine and the library database.
"""

from dataclasses import dataclass
from enum import Enum

ORIGIN_MARKER = "Origin:"
NOTE_LINE_BREAK = "\r\n"

# Pixiv artist tags arrive as "Artist:<name>"; Billfish 3.x nests them under "Artist"
ARTIST_PREFIX = "Artist:"
ARTIST_PARENT_NAME = "Artist"


class SchemaVariant(Enum):
    """Billfish database layout, decided once per run."""

    LEGACY = "legacy"  # Billfish 2.x: flat bf_tag
    HIERARCHICAL = "hierarchical"  # Billfish 3.x: bf_tag_v2 with parent ids

    @property
    def tag_table(self) -> str:
        return "bf_tag_v2" if self is SchemaVariant.HIERARCHICAL else "bf_tag"


@dataclass(frozen=True)
class FileRecord:
    """A file in the Billfish library, fixed for the run."""

    id: int
    name: str


@dataclass(frozen=True)
class TagRecord:
    """A tag identity; the name is the natural key."""

    id: int
    name: str


@dataclass(frozen=True)
class Association:
    """Link between a file and a tag (bf_tag_join_file row)."""

    file_id: int
    tag_id: int


@dataclass(frozen=True)
class NoteRecord:
    """A file note plus the URL it was taken from."""

    file_id: int
    text: str
    origin: str = ""

    @property
    def stored_text(self) -> str:
        """Note text as written to bf_material_userdata.note, origin marker included."""
        if not self.origin:
            return self.text
        return f"{self.text}{NOTE_LINE_BREAK}{ORIGIN_MARKER}{self.origin}"


def split_origin(stored: str) -> tuple[str, str]:
    """Split a stored note into (text, origin).

    The marker is "Origin:" followed by everything up to the next line break
    or the end of the note.
    """
    pos = stored.rfind(ORIGIN_MARKER)
    if pos == -1:
        return stored, ""
    end = stored.find(NOTE_LINE_BREAK, pos)
    origin_end = end if end != -1 else len(stored)
    origin = stored[pos + len(ORIGIN_MARKER):origin_end]
    text = stored[:pos]
    if text.endswith(NOTE_LINE_BREAK):
        text = text[: -len(NOTE_LINE_BREAK)]
    return text, origin
