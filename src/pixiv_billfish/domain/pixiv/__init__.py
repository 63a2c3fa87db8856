"""
Pixiv metadata source for Pixiv2Billfish.

Reads artwork ids from file names and fetches tags and descriptions from the
Pixiv ajax API.
"""

from .api import (
    ALLOWED_SUFFIXES,
    PixivClient,
    clean_html,
    extract_identifier,
    format_description,
    process_artist_name,
)
from .exceptions import (
    ApiError,
    IdentifierExtractionError,
    PixivError,
    TransientFetchError,
)
from .models import NOT_FOUND_SENTINEL, IllustInfo
from .source import MetadataSource

__all__ = [
    "ALLOWED_SUFFIXES",
    "PixivClient",
    "clean_html",
    "extract_identifier",
    "format_description",
    "process_artist_name",
    "ApiError",
    "IdentifierExtractionError",
    "PixivError",
    "TransientFetchError",
    "NOT_FOUND_SENTINEL",
    "IllustInfo",
    "MetadataSource",
]
