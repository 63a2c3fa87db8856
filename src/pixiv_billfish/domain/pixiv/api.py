"""
Pixiv API operations.

Fetches artwork tags and descriptions from the Pixiv ajax endpoint and turns
them into Billfish tags and notes.
"""

import re
import threading
import time
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from pixiv_billfish.core.config import NetworkConfig
from pixiv_billfish.core.models import ARTIST_PREFIX

from .exceptions import ApiError, TransientFetchError
from .models import NOT_FOUND_SENTINEL, IllustInfo

# File name suffixes Billfish may hold Pixiv downloads under
ALLOWED_SUFFIXES = (
    "jpg",
    "png",
    "gif",
    "webp",
    "webm",
    "zip",
    "jpg.lnk",
    "png.lnk",
    "gif.lnk",
    "webp.lnk",
    "webm.lnk",
    "zip.lnk",
)

_ID_SEPARATORS = ("-", "_", ".")

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_LINK_RE = re.compile(r'<a\s+href="([^"]+)"[^>]*>', re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_JUMP_RE = re.compile(r"\[url\]/jump\.php[^\]]*\[/url\]\r\n")


def extract_identifier(file_name: str) -> Optional[str]:
    """Extract the Pixiv artwork id from a Billfish file name.

    Pixiv downloads are named like "12345678_p0.png" or "12345678-1.jpg":
    the id is the digit run before the first "-", "_" or ".".

    Args:
        file_name: Display name of the file

    Returns:
        Artwork id, or None if the name doesn't look like a Pixiv download
    """
    lowered = file_name.lower()
    if not any(
        len(lowered) > len(suffix) and lowered.endswith(suffix)
        for suffix in ALLOWED_SUFFIXES
    ):
        return None

    positions = [file_name.find(sep) for sep in _ID_SEPARATORS]
    positions = [pos for pos in positions if pos != -1]
    if not positions:
        return None

    pid = file_name[: min(positions)]
    if not pid or not pid.isascii() or not pid.isdigit():
        return None
    return pid


def process_artist_name(artist: str) -> str:
    """Drop the "@event" suffix artists append to their display name."""
    result = artist
    for mark in ("@", "＠"):
        pos = result.rfind(mark)
        if pos != -1 and 2 <= pos <= len(result) - 3:
            result = result[:pos]
    return result


def clean_html(html: str) -> str:
    """Convert a Pixiv caption into plain text with [url] markers."""
    result = _BR_RE.sub("\r\n", html)
    result = _LINK_RE.sub(r"[url]\1[/url]\r\n", result)
    result = _TAG_RE.sub("", result)
    return _JUMP_RE.sub("", result)


def format_description(info: IllustInfo) -> str:
    """Render artwork info as a Billfish note.

    Single quotes are doubled for Billfish's note escaping.
    """
    note = (
        f"Title:{info.title}\r\n"
        f"Artist:{info.artist}\r\n"
        f"UID:{info.user_id}\r\n"
        f"Bookmark:{info.bookmark_count}\r\n"
    )
    if info.comment:
        note += "Comment:\r\n" + info.comment
    else:
        note += "No Comment\r\n"
    return note.replace("'", "''")


class PixivClient:
    """Pixiv ajax client shared by all worker threads.

    Each thread gets its own requests.Session. Every fetch waits
    ``request_delay_ms`` first; connection errors, timeouts, 429 and 5xx
    answers are retried ``retry_count`` times before the fetch gives up.
    """

    def __init__(self, config: NetworkConfig):
        self.config = config
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.config.headers)
            proxies = self.config.proxies()
            if proxies:
                session.proxies.update(proxies)
            session.verify = self.config.verify_ssl
            self._local.session = session
        return session

    def origin_url(self, identifier: str) -> str:
        """Artwork page URL, stored as the note origin."""
        return f"{self.config.artwork_url}{identifier}"

    def _get(self, url: str) -> requests.Response:
        """GET with rate limiting and bounded retry.

        Raises:
            TransientFetchError: If every attempt failed
        """
        if self.config.request_delay_ms > 0:
            time.sleep(self.config.request_delay_ms / 1000)

        attempts = self.config.retry_count
        last_error = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                response = self._session().get(url, timeout=self.config.request_timeout)
            except requests.RequestException as e:
                last_error = str(e)
            else:
                if response.status_code != 429 and response.status_code < 500:
                    return response
                last_error = f"HTTP {response.status_code}"

            if attempt < attempts:
                logger.debug(f"Request failed ({last_error}), retry {attempt}/{attempts}: {url}")
                time.sleep(self.config.retry_backoff_ms / 1000)

        logger.warning(f"Request failed after {attempts} attempts: {url}")
        raise TransientFetchError(url, attempts, f"{last_error} after {attempts} attempts: {url}")

    def _fetch_illust(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Fetch the artwork payload.

        Returns:
            The "body" object, or None if Pixiv answered 404

        Raises:
            TransientFetchError: If the request kept failing
            ApiError: If Pixiv returned an error payload or unreadable JSON
        """
        response = self._get(f"{self.config.api_url}{identifier}")
        if response.status_code == 404:
            logger.warning(f"PID={identifier} returned 404")
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON for PID={identifier}: {e}") from e

        if not isinstance(data, dict) or data.get("error"):
            message = data.get("message", "") if isinstance(data, dict) else ""
            raise ApiError(f"Pixiv error for PID={identifier}: {message}")

        body = data.get("body")
        if not isinstance(body, dict):
            raise ApiError(f"Missing body for PID={identifier}")
        return body

    def fetch_tags(self, identifier: str) -> Optional[List[str]]:
        """Get the sorted, deduplicated tag names of an artwork.

        The list holds "Artist:<name>" plus every tag and its English
        translation. A 404 yields ["Error:404"].

        Returns:
            Tag names, or None if Pixiv is unavailable
        """
        try:
            body = self._fetch_illust(identifier)
        except TransientFetchError:
            return None
        except ApiError as e:
            logger.warning(str(e))
            return None

        if body is None:
            return [NOT_FOUND_SENTINEL]

        try:
            tag_list = [ARTIST_PREFIX + process_artist_name(body["userName"])]
            for tag in body["tags"]["tags"]:
                translation = tag.get("translation")
                if isinstance(translation, dict) and translation.get("en"):
                    tag_list.append(translation["en"])
                tag_list.append(tag["tag"])
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse tags for PID={identifier}: {e!r}")
            return None

        return sorted(set(tag_list))

    def fetch_description(self, identifier: str) -> Optional[IllustInfo]:
        """Get the fields used for the file note.

        A 404 yields an otherwise empty IllustInfo whose comment is "Error:404".

        Returns:
            IllustInfo, or None if Pixiv is unavailable
        """
        try:
            body = self._fetch_illust(identifier)
        except TransientFetchError:
            return None
        except ApiError as e:
            logger.warning(str(e))
            return None

        if body is None:
            return IllustInfo.not_found()

        try:
            return IllustInfo(
                title=body["illustTitle"],
                artist=process_artist_name(body["userName"]),
                user_id=str(body["userId"]),
                bookmark_count=int(body["bookmarkCount"]),
                comment=clean_html(body.get("illustComment") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse artwork info for PID={identifier}: {e!r}")
            return None

    # Pure helpers exposed on the client so it satisfies MetadataSource
    extract_identifier = staticmethod(extract_identifier)
    format_description = staticmethod(format_description)
