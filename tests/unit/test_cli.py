"""
Unit tests for the inspection CLI.
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from offline_sync.cli import main
from offline_sync.models.records import MutationOperation
from offline_sync.storage.sqlite_cache import SQLiteLocalCache

from fixtures.remote_fixtures import at


def seed(path):
    async def _seed():
        async with SQLiteLocalCache(path) as cache:
            await cache.put("r1", "recipe", {"title": "Soup"}, updated_at=at(0))
            await cache.put("r2", "recipe", {"title": "Stew"}, pending_sync=True, updated_at=at(5))
            await cache.put("c1", "collection", {"name": "Winter"}, updated_at=at(1))
            await cache.enqueue_mutation("r2", MutationOperation.UPDATE, {"title": "Stew"}, "recipe", enqueued_at=at(5))
            await cache.enqueue_mutation("r9", MutationOperation.DELETE, None, "recipe", enqueued_at=at(2))
            await cache.set_cursor("17")
            await cache.set_last_sync_at(at(3))

    asyncio.run(_seed())


@pytest.fixture
def cache_path(tmp_path):
    path = tmp_path / "cache.db"
    seed(path)
    return path


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("offline_sync.cli.setup_logging") as mocked:
        yield mocked


def run_json(capsys, *args):
    exit_code = main(["--json", *args])
    return exit_code, json.loads(capsys.readouterr().out)


class TestCommands:
    """Test each inspection command."""

    def test_status(self, cache_path, capsys):
        exit_code, data = run_json(capsys, "--cache", str(cache_path), "status")

        assert exit_code == 0
        assert data["cursor"] == "17"
        assert data["pending_count"] == 2
        assert data["record_count"] == 3
        assert data["last_sync_at"] == at(3).isoformat()

    def test_pending_in_drain_order(self, cache_path, capsys):
        exit_code, data = run_json(capsys, "--cache", str(cache_path), "pending")

        assert exit_code == 0
        assert [m["key"] for m in data] == ["r9", "r2"]
        assert data[0]["operation"] == "delete"

    def test_records_filters(self, cache_path, capsys):
        _, data = run_json(capsys, "--cache", str(cache_path), "records", "--type", "recipe")
        assert [r["key"] for r in data] == ["r1", "r2"]

        _, data = run_json(capsys, "--cache", str(cache_path), "records", "--pending-only")
        assert [r["key"] for r in data] == ["r2"]

    def test_table_output(self, cache_path, capsys):
        exit_code = main(["--cache", str(cache_path), "status"])

        assert exit_code == 0
        assert "Sync status" in capsys.readouterr().out


class TestErrors:
    """Test CLI failure paths."""

    def test_missing_cache(self, tmp_path, capsys):
        exit_code = main(["--cache", str(tmp_path / "absent.db"), "status"])

        assert exit_code == 1
        assert "Cache not found" in capsys.readouterr().out
        assert not (tmp_path / "absent.db").exists()

    def test_invalid_config(self, tmp_path, cache_path, capsys):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"drainer": {"superseded_policy": "sometimes"}}))

        exit_code = main(["--config", str(config), "--cache", str(cache_path), "status"])

        assert exit_code == 2
        assert "Configuration error" in capsys.readouterr().out

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

    def test_logging_configured_from_config(self, cache_path, no_logging_setup):
        main(["--debug", "--cache", str(cache_path), "status"])

        kwargs = no_logging_setup.call_args.kwargs
        assert kwargs["log_level"] == "DEBUG"
        assert kwargs["enable_console"] is True
