"""
Pixiv domain models.
"""

from dataclasses import dataclass

# Returned in place of real data when Pixiv answers 404 (deleted/private work)
NOT_FOUND_SENTINEL = "Error:404"


@dataclass(frozen=True)
class IllustInfo:
    """Descriptive fields of a Pixiv artwork, used to build the file note."""

    title: str = ""
    artist: str = ""
    user_id: str = ""
    bookmark_count: int = 0
    comment: str = ""

    @classmethod
    def not_found(cls) -> "IllustInfo":
        return cls(comment=NOT_FOUND_SENTINEL)
