"""Tests for the memer CLI."""

import asyncio
import json
import signal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from memer.cli import _install_stop_handlers, main
from memer.config.settings import Settings
from memer.services.engine import Engine


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def subs_path(tmp_path: Path) -> Path:
    path = tmp_path / "subs.json"
    path.write_text(json.dumps({"cats": ["aww"], "dogs": ["rarepuppers"]}))
    return path


@pytest.fixture
def settings(subs_path: Path):
    with patch("memer.cli.get_settings", return_value=Settings(subs_file=subs_path)):
        yield


class _ContextSource:
    """Wraps a fake source with the async context manager RedditSource provides."""

    def __init__(self, source):
        self._source = source

    async def __aenter__(self):
        return self._source

    async def __aexit__(self, *exc_info):
        return None


# ── groups ───────────────────────────────────────────────


class TestGroups:
    def test_lists_groups(self, runner, settings):
        result = runner.invoke(main, ["groups"])

        assert result.exit_code == 0
        assert "cats: aww" in result.output
        assert "dogs: rarepuppers" in result.output

    def test_missing_subs_file(self, runner, tmp_path):
        with patch(
            "memer.cli.get_settings",
            return_value=Settings(subs_file=tmp_path / "absent.json"),
        ):
            result = runner.invoke(main, ["groups"])

        assert result.exit_code != 0
        assert "failed to read file" in result.output


# ── refresh ──────────────────────────────────────────────


class TestRefresh:
    def test_reports_each_subreddit(self, runner, settings, fake_source_factory, make_item):
        source = fake_source_factory(
            posts={"aww": [make_item("/r/aww/1"), make_item("/r/aww/2")]},
            failures={"rarepuppers"},
        )

        with patch(
            "memer.content.reddit_source.RedditSource",
            return_value=_ContextSource(source),
        ):
            result = runner.invoke(main, ["refresh"])

        assert result.exit_code == 1
        assert "r/aww: 2 posts" in result.output
        assert "r/rarepuppers: r/rarepuppers: HTTP 503" in result.output

    def test_single_group(self, runner, settings, fake_source_factory, make_item):
        source = fake_source_factory(posts={"aww": [make_item("/r/aww/1")]})

        with patch(
            "memer.content.reddit_source.RedditSource",
            return_value=_ContextSource(source),
        ):
            result = runner.invoke(main, ["refresh", "--group", "cats"])

        assert result.exit_code == 0
        assert source.calls == ["aww"]

    def test_unknown_group(self, runner, settings):
        result = runner.invoke(main, ["refresh", "--group", "birds"])

        assert result.exit_code != 0
        assert "unknown subreddit group: birds" in result.output


# ── deliver ──────────────────────────────────────────────


@pytest.fixture
def runtime(source_groups, fake_source_factory, fake_repository, make_item):
    source = fake_source_factory(posts={"aww": [make_item("/r/aww/1", title="Cat")]})
    runtime = MagicMock()
    runtime.engine = Engine.create(source_groups, fake_repository, source)
    runtime.close = AsyncMock()
    with patch(
        "memer.services.engine.Runtime.open", new=AsyncMock(return_value=runtime)
    ):
        yield runtime


class TestDeliver:
    def test_prints_post(self, runner, runtime):
        result = runner.invoke(main, ["deliver", "42", "--group", "cats"])

        assert result.exit_code == 0
        assert "Cat (r/aww, score 100)" in result.output
        assert "https://reddit.com/r/aww/1" in result.output
        runtime.close.assert_awaited_once()

    def test_nothing_to_deliver(self, runner, runtime):
        result = runner.invoke(main, ["deliver", "42", "--group", "dogs"])

        assert result.exit_code == 0
        assert "No posts available" in result.output

    def test_unknown_group(self, runner, runtime):
        result = runner.invoke(main, ["deliver", "42", "--group", "birds"])

        assert result.exit_code != 0
        assert "unknown subreddit group: birds" in result.output
        runtime.close.assert_awaited_once()

    def test_rejects_non_numeric_channel(self, runner):
        result = runner.invoke(main, ["deliver", "general"])

        assert result.exit_code == 2


# ── register ─────────────────────────────────────────────


class TestRegister:
    def test_inserts_new_channel(self, runner):
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=["UPDATE 0", "INSERT 0 1"])

        with patch("memer.storage.database.Database") as mock_db_cls:
            mock_db_cls.return_value.__aenter__.return_value = db
            result = runner.invoke(main, ["register", "42", "memes", "--nsfw"])

        assert result.exit_code == 0
        assert "Registered channel 42 (memes, nsfw=True)" in result.output
        assert db.execute.call_args_list[1][0][1:4] == ("42", "memes", True)

    def test_updates_existing_channel(self, runner):
        db = AsyncMock()
        db.execute = AsyncMock(return_value="UPDATE 1")

        with patch("memer.storage.database.Database") as mock_db_cls:
            mock_db_cls.return_value.__aenter__.return_value = db
            result = runner.invoke(main, ["register", "42", "memes"])

        assert result.exit_code == 0
        assert "Updated channel 42" in result.output
        db.execute.assert_called_once()


# ── init-db ──────────────────────────────────────────────


class TestInitDb:
    def test_creates_table(self, runner):
        db = AsyncMock()

        with patch("memer.storage.database.Database") as mock_db_cls:
            mock_db_cls.return_value.__aenter__.return_value = db
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "CREATE TABLE IF NOT EXISTS channels" in db.execute.call_args[0][0]


# ── signal handling ──────────────────────────────────────


class _RecordingLoop:
    """Captures signal handlers and schedules tasks on the real loop."""

    def __init__(self, loop):
        self._loop = loop
        self.handlers = {}

    def add_signal_handler(self, sig, callback):
        self.handlers[sig] = callback

    def create_task(self, coro):
        return self._loop.create_task(coro)


class TestStopHandlers:
    @pytest.mark.asyncio
    async def test_signal_runs_stop_and_keeps_task_until_done(self):
        stopped = asyncio.Event()

        async def stop():
            await asyncio.sleep(0)
            stopped.set()

        loop = _RecordingLoop(asyncio.get_running_loop())
        pending = _install_stop_handlers(loop, stop)

        assert set(loop.handlers) == {signal.SIGTERM, signal.SIGINT}

        loop.handlers[signal.SIGTERM]()
        assert len(pending) == 1

        await asyncio.wait_for(stopped.wait(), timeout=1.0)
        for _ in range(10):
            if not pending:
                break
            await asyncio.sleep(0)
        assert pending == set()
