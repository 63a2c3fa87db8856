"""Tests for the pixiv-billfish command line entry point."""

from unittest.mock import MagicMock, patch

import pytest

from pixiv_billfish import cli
from pixiv_billfish.core.config import Config
from pixiv_billfish.domain.sync import InitializationError, StatsSnapshot, SyncReport
from pixiv_billfish.core.models import SchemaVariant


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep tests from touching the real log directory."""
    with patch("pixiv_billfish.cli.setup_from_config") as setup:
        yield setup


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestApplyOverrides:
    def test_flags_override_config(self):
        args = parse(
            "--db", "/lib/billfish.db", "--start", "5", "--limit", "10",
            "--no-notes", "--no-skip", "--log-level", "debug",
        )

        config = cli.apply_overrides(Config(), args)

        assert config.database.path == "/lib/billfish.db"
        assert config.sync.start_file_num == 5
        assert config.sync.end_file_num == 10
        assert config.sync.write_note is False
        assert config.sync.write_tag is True
        assert config.sync.skip_existing is False
        assert config.logging.level == "DEBUG"

    def test_no_flags_keep_config(self):
        config = cli.apply_overrides(Config(), parse())

        assert config == Config()


class TestRun:
    """Tests for cli.run exit codes."""

    def test_init_config_writes_file(self, tmp_path):
        path = tmp_path / "config.toml"

        assert cli.run(parse("--init-config", "--config", str(path))) == 0
        assert "[sync]" in path.read_text()

    def test_missing_database_exits_1(self, tmp_path):
        args = parse("--config", str(tmp_path / "none.toml"), "--db", str(tmp_path / "none.db"))

        assert cli.run(args) == 1

    def test_initialization_failure_exits_1(self, tmp_path, legacy_db):
        args = parse("--config", str(tmp_path / "none.toml"), "--db", str(legacy_db))

        with patch("pixiv_billfish.cli.SyncEngine") as engine_cls:
            engine_cls.return_value.run.side_effect = InitializationError("bad")
            assert cli.run(args) == 1

    def test_successful_run_prints_report(self, tmp_path, legacy_db):
        args = parse("--config", str(tmp_path / "none.toml"), "--db", str(legacy_db))
        report = SyncReport(
            variant=SchemaVariant.LEGACY,
            files=3,
            tag_stats=StatsSnapshot(3, 2, 1, 0),
            note_stats=StatsSnapshot(3, 3, 0, 0),
            elapsed_seconds=1.5,
        )
        console = MagicMock()

        with patch("pixiv_billfish.cli.SyncEngine") as engine_cls, patch(
            "pixiv_billfish.cli.get_console", return_value=console
        ):
            engine_cls.return_value.run.return_value = report
            assert cli.run(args) == 0

        assert console.print.call_count >= 2

    def test_both_pipelines_disabled(self, tmp_path):
        args = parse("--config", str(tmp_path / "none.toml"), "--no-tags", "--no-notes")

        assert cli.run(args) == 0


def test_main_exits_with_run_code():
    with patch("pixiv_billfish.cli.run", return_value=1):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--no-skip"])

    assert exc_info.value.code == 1
