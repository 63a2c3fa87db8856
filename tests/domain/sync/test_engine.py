"""Tests for the sync engine lifecycle and pipelines."""

from unittest.mock import patch

import pytest

from pixiv_billfish.core.database import AssetStore, PersistenceError
from pixiv_billfish.core.models import SchemaVariant
from pixiv_billfish.domain.pixiv import IllustInfo
from pixiv_billfish.domain.sync import (
    InitializationError,
    RunState,
    StatsSnapshot,
    SyncEngine,
)


def run_engine(config, db_path, source):
    with AssetStore(db_path) as store:
        engine = SyncEngine(config, store, source)
        report = engine.run()
    return engine, report


class TestTagPipeline:
    """Tests for the tag pipeline."""

    def test_skips_tagged_and_unparseable_files(self, fast_config, make_db, make_source, db_query):
        db = make_db(["12345-1.jpg", "bad.txt", "67890_2.png"])
        with AssetStore(db) as store:
            store._conn.execute("INSERT INTO bf_tag (id, name) VALUES (1, 'old')")
            store._conn.execute("INSERT INTO bf_tag_join_file VALUES (3, 1)")
        fast_config.sync.write_note = False
        source = make_source(tags={"12345": ["Cat", "Artist:Alice"], "67890": ["Dog"]})

        engine, report = run_engine(fast_config, db, source)

        assert source.tag_calls == ["12345"]
        assert report.tag_stats == StatsSnapshot(total=3, success=1, fail=1, skip=1)
        assert report.note_stats is None
        assert engine.state is RunState.DONE

        linked = db_query(
            db,
            "SELECT t.name FROM bf_tag_join_file j JOIN bf_tag t ON t.id = j.tag_id "
            "WHERE j.file_id = 1 ORDER BY t.name",
        )
        assert linked == [("Artist:Alice",), ("Cat",)]

    def test_shared_tags_created_once(self, fast_config, make_db, make_source, db_query):
        db = make_db(["1_p0.jpg", "2_p0.jpg"])
        fast_config.sync.write_note = False
        fast_config.sync.tag_thread_count = 4
        source = make_source(tags={"1": ["Artist:Alice", "Cat"], "2": ["Artist:Alice", "Dog"]})

        run_engine(fast_config, db, source)

        counts = dict(
            db_query(
                db,
                "SELECT t.name, COUNT(j.file_id) FROM bf_tag t "
                "JOIN bf_tag_join_file j ON j.tag_id = t.id GROUP BY t.name",
            )
        )
        assert counts == {"Artist:Alice": 2, "Cat": 1, "Dog": 1}
        assert db_query(db, "SELECT COUNT(*) FROM bf_tag") == [(3,)]

    def test_unavailable_source_counts_failure(self, fast_config, legacy_db, make_source, db_query):
        fast_config.sync.write_note = False
        source = make_source(tags={"111": ["sky"]})

        _, report = run_engine(fast_config, legacy_db, source)

        assert report.tag_stats == StatsSnapshot(total=3, success=1, fail=2, skip=0)

    def test_worker_fault_is_a_failure(self, fast_config, legacy_db, fake_source):
        fast_config.sync.write_note = False
        fake_source.fail_on = {"222"}

        _, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.tag_stats.fail == 1
        assert report.tag_stats.success == 2
        assert report.tag_stats.total == 3

    def test_no_skip_refetches(self, fast_config, legacy_db, fake_source):
        fast_config.sync.write_note = False
        run_engine(fast_config, legacy_db, fake_source)

        fast_config.sync.skip_existing = False
        _, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.tag_stats.success == 3
        assert len(fake_source.tag_calls) == 6


class TestNotePipeline:
    """Tests for the note pipeline."""

    def test_writes_notes_with_origin(self, fast_config, legacy_db, fake_source, db_query):
        fast_config.sync.write_tag = False

        _, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.note_stats == StatsSnapshot(total=3, success=3, fail=0, skip=0)
        assert report.tag_stats is None
        note, origin = db_query(
            legacy_db, "SELECT note, origin FROM bf_material_userdata WHERE file_id = 2"
        )[0]
        assert origin == "https://www.pixiv.net/artworks/222"
        assert note == (
            "Title:Face\r\nArtist:bob\r\nUID:2\r\nBookmark:0\r\nComment:\r\nhello"
            "\r\nOrigin:https://www.pixiv.net/artworks/222"
        )

    def test_existing_notes_are_skipped(self, fast_config, legacy_db, fake_source):
        fast_config.sync.write_tag = False
        run_engine(fast_config, legacy_db, fake_source)

        _, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.note_stats.skip == 3
        assert len(fake_source.description_calls) == 3

    def test_not_found_artwork_still_noted(self, fast_config, legacy_db, make_source, db_query):
        fast_config.sync.write_tag = False
        source = make_source(infos={"111": IllustInfo.not_found()})

        _, report = run_engine(fast_config, legacy_db, source)

        assert report.note_stats.success == 1
        note = db_query(legacy_db, "SELECT note FROM bf_material_userdata WHERE file_id = 1")[0][0]
        assert "Comment:\r\nError:404" in note


class TestLifecycle:
    """Tests for initialization, finalization and the run report."""

    def test_both_pipelines(self, fast_config, legacy_db, fake_source):
        engine, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.variant is SchemaVariant.LEGACY
        assert report.files == 3
        assert report.tag_stats.success == 3
        assert report.note_stats.success == 3
        assert report.unwritten == {}
        assert report.regrouped_artist_tags == 0

    def test_hierarchical_run_regroups_artists(self, fast_config, hierarchical_db, fake_source, db_query):
        _, report = run_engine(fast_config, hierarchical_db, fake_source)

        assert report.variant is SchemaVariant.HIERARCHICAL
        assert report.regrouped_artist_tags == 2
        names = {row[0] for row in db_query(hierarchical_db, "SELECT name FROM bf_tag_v2")}
        assert {"Artist", "alice", "bob", "landscape", "sky", "portrait"} == names

    def test_second_hierarchical_run_reuses_regrouped_tags(
        self, fast_config, hierarchical_db, fake_source, db_query
    ):
        run_engine(fast_config, hierarchical_db, fake_source)
        fast_config.sync.skip_existing = False

        run_engine(fast_config, hierarchical_db, fake_source)

        assert db_query(hierarchical_db, "SELECT COUNT(*) FROM bf_tag_v2") == [(6,)]

    def test_file_window(self, fast_config, legacy_db, fake_source):
        fast_config.sync.start_file_num = 1
        fast_config.sync.end_file_num = 1

        _, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.files == 1
        assert fake_source.tag_calls == ["222"]

    def test_empty_window_is_done(self, fast_config, legacy_db, fake_source):
        fast_config.sync.start_file_num = 10

        engine, report = run_engine(fast_config, legacy_db, fake_source)

        assert report.files == 0
        assert engine.state is RunState.DONE
        assert fake_source.tag_calls == []

    def test_invalid_config_fails_before_dispatch(self, fast_config, legacy_db, fake_source):
        fast_config.sync.tag_thread_count = 0

        with AssetStore(legacy_db) as store:
            engine = SyncEngine(fast_config, store, fake_source)
            with pytest.raises(InitializationError):
                engine.run()

        assert engine.state is RunState.FAILED
        assert fake_source.tag_calls == []

    def test_missing_database_fails(self, fast_config, tmp_path, fake_source):
        engine = SyncEngine(fast_config, AssetStore(tmp_path / "missing.db"), fake_source)

        with pytest.raises(InitializationError):
            engine.run()
        assert engine.state is RunState.FAILED

    def test_engine_runs_once(self, fast_config, legacy_db, fake_source):
        with AssetStore(legacy_db) as store:
            engine = SyncEngine(fast_config, store, fake_source)
            engine.run()
            with pytest.raises(RuntimeError):
                engine.run()

    def test_rows_left_unwritten_are_reported(self, fast_config, legacy_db, fake_source):
        fast_config.sync.write_tag = False
        with AssetStore(legacy_db) as store:
            engine = SyncEngine(fast_config, store, fake_source)
            with patch.object(
                store,
                "insert_notes",
                side_effect=PersistenceError("insert_notes", 3, RuntimeError("disk")),
            ):
                report = engine.run()

        assert report.unwritten == {"notes": 3}
        assert report.note_stats.success == 3
