"""Pixiv-specific exceptions for error handling."""

from typing import Optional


class PixivError(Exception):
    """Base exception for Pixiv operations."""

    pass


class IdentifierExtractionError(PixivError):
    """Raised when no artwork id can be read from a file name."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"No Pixiv id in file name: {file_name}")


class TransientFetchError(PixivError):
    """Raised when a request keeps failing after every retry."""

    def __init__(self, url: str, attempts: int, message: Optional[str] = None):
        self.url = url
        self.attempts = attempts
        super().__init__(message or f"Request failed after {attempts} attempts: {url}")


class ApiError(PixivError):
    """Raised when Pixiv answers with an error payload or malformed JSON."""

    pass
