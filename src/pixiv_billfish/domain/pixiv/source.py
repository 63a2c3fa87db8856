"""
Metadata source interface.

Defines the contract the sync engine relies on. PixivClient is the production
implementation; tests substitute in-memory fakes.
"""

from typing import List, Optional, Protocol

from .models import IllustInfo


class MetadataSource(Protocol):
    """Remote metadata for files identified by their display name."""

    def extract_identifier(self, file_name: str) -> Optional[str]:
        """Return the remote id encoded in a file name, or None."""
        ...

    def fetch_tags(self, identifier: str) -> Optional[List[str]]:
        """Return the ordered, deduplicated tag names, or None if unavailable."""
        ...

    def fetch_description(self, identifier: str) -> Optional[IllustInfo]:
        """Return the descriptive record, or None if unavailable."""
        ...

    def format_description(self, info: IllustInfo) -> str:
        """Render a descriptive record as note text."""
        ...

    def origin_url(self, identifier: str) -> str:
        """URL the note was taken from."""
        ...
