"""Shared fixtures: throwaway Billfish databases and an in-memory metadata source."""

import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from pixiv_billfish.core.config import Config
from pixiv_billfish.core.database import AssetStore
from pixiv_billfish.domain.pixiv import IllustInfo, extract_identifier, format_description

COMMON_SCHEMA = """
CREATE TABLE bf_file (
    id INTEGER PRIMARY KEY,
    name TEXT
);
CREATE TABLE bf_tag_join_file (
    file_id INTEGER NOT NULL,
    tag_id INTEGER NOT NULL,
    PRIMARY KEY (file_id, tag_id)
);
CREATE TABLE bf_material_userdata (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER UNIQUE,
    note TEXT,
    origin TEXT
);
"""

LEGACY_SCHEMA = """
CREATE TABLE bf_tag (
    id INTEGER PRIMARY KEY,
    name TEXT UNIQUE
);
"""

HIERARCHICAL_SCHEMA = """
CREATE TABLE bf_tag_v2 (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    pid INTEGER DEFAULT 0
);
"""


def create_billfish_db(path: Path, hierarchical: bool = False, files: List[str] = ()) -> Path:
    """Create an empty Billfish library database holding ``files``."""
    conn = sqlite3.connect(path)
    try:
        conn.executescript(COMMON_SCHEMA)
        conn.executescript(HIERARCHICAL_SCHEMA if hierarchical else LEGACY_SCHEMA)
        conn.executemany(
            "INSERT INTO bf_file (id, name) VALUES (?, ?)",
            [(index, name) for index, name in enumerate(files, start=1)],
        )
        conn.commit()
    finally:
        conn.close()
    return path


def query(path: Path, sql: str, params: tuple = ()) -> list:
    """Read rows back with a separate connection."""
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


@pytest.fixture
def legacy_db(tmp_path: Path) -> Path:
    """Billfish 2.x library with three Pixiv files."""
    return create_billfish_db(
        tmp_path / "billfish.db",
        files=["111_p0.jpg", "222_p0.png", "333-1.gif"],
    )


@pytest.fixture
def hierarchical_db(tmp_path: Path) -> Path:
    """Billfish 3.x library with three Pixiv files."""
    return create_billfish_db(
        tmp_path / "billfish.db",
        hierarchical=True,
        files=["111_p0.jpg", "222_p0.png", "333-1.gif"],
    )


@pytest.fixture
def store(legacy_db: Path):
    """Opened store on the legacy library."""
    with AssetStore(legacy_db) as asset_store:
        yield asset_store


@pytest.fixture
def hierarchical_store(hierarchical_db: Path):
    """Opened store on the hierarchical library."""
    with AssetStore(hierarchical_db) as asset_store:
        yield asset_store


@pytest.fixture
def fast_config() -> Config:
    """Config with small pools and no network delays."""
    config = Config()
    config.network.request_delay_ms = 0
    config.network.retry_backoff_ms = 0
    config.sync.tag_thread_count = 2
    config.sync.note_thread_count = 2
    return config


class FakeSource:
    """In-memory MetadataSource keyed by artwork id.

    Ids missing from ``tags`` / ``infos`` behave like an unreachable Pixiv.
    """

    def __init__(
        self,
        tags: Optional[Dict[str, List[str]]] = None,
        infos: Optional[Dict[str, IllustInfo]] = None,
        fail_on: Optional[set] = None,
    ):
        self.tags = tags or {}
        self.infos = infos or {}
        self.fail_on = fail_on or set()
        self.tag_calls: List[str] = []
        self.description_calls: List[str] = []
        self._lock = threading.Lock()

    def extract_identifier(self, file_name: str) -> Optional[str]:
        return extract_identifier(file_name)

    def fetch_tags(self, identifier: str) -> Optional[List[str]]:
        with self._lock:
            self.tag_calls.append(identifier)
        if identifier in self.fail_on:
            raise RuntimeError(f"boom {identifier}")
        tags = self.tags.get(identifier)
        return sorted(set(tags)) if tags is not None else None

    def fetch_description(self, identifier: str) -> Optional[IllustInfo]:
        with self._lock:
            self.description_calls.append(identifier)
        if identifier in self.fail_on:
            raise RuntimeError(f"boom {identifier}")
        return self.infos.get(identifier)

    def format_description(self, info: IllustInfo) -> str:
        return format_description(info)

    def origin_url(self, identifier: str) -> str:
        return f"https://www.pixiv.net/artworks/{identifier}"


@pytest.fixture
def fake_source() -> FakeSource:
    """Source that knows artworks 111, 222 and 333."""
    return FakeSource(
        tags={
            "111": ["Artist:alice", "landscape", "sky"],
            "222": ["Artist:bob", "sky", "portrait"],
            "333": ["Artist:alice", "landscape"],
        },
        infos={
            "111": IllustInfo(title="Hills", artist="alice", user_id="1", bookmark_count=3),
            "222": IllustInfo(title="Face", artist="bob", user_id="2", comment="hello"),
            "333": IllustInfo(title="Lake", artist="alice", user_id="1"),
        },
    )


@pytest.fixture
def make_source():
    """Factory for FakeSource instances."""
    return FakeSource


@pytest.fixture
def make_db(tmp_path: Path):
    """Factory for Billfish databases: make_db(files, hierarchical=False)."""

    def _make(files: List[str], hierarchical: bool = False, name: str = "library.db") -> Path:
        return create_billfish_db(tmp_path / name, hierarchical=hierarchical, files=files)

    return _make


@pytest.fixture
def db_query():
    """Run a read-only query against a database file."""
    return query
