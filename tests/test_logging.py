from __future__ import annotations

import logging

import pytest

from tachi.logging import ROOT_LOGGER
from tachi.logging import VERBOSE
from tachi.logging import LogLevelOverride
from tachi.logging import create_log_ctx
from tachi.logging import get_log_level


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def override(scheduler):
    ROOT_LOGGER.setLevel(logging.INFO)
    return LogLevelOverride(default_level="info", schedule=scheduler)


class TestLogLevelOverride:
    """Tests for temporary log level changes."""

    def test_set_returns_previous(self, override):
        assert override.set("debug", 5) == "info"
        assert get_log_level() == "debug"

    def test_schedules_reset(self, override, scheduler):
        override.set("verbose", 5)

        (timer,) = scheduler.timers
        assert timer.delay == 300

        timer.callback()

        assert get_log_level() == "info"
        assert override.pending is None

    def test_new_override_cancels_pending_reset(self, override, scheduler):
        override.set("debug", 5)
        override.set("error", 10)

        first, second = scheduler.timers
        assert first.cancelled
        assert not second.cancelled
        assert override.pending is second

    def test_no_reset(self, override, scheduler):
        override.set("debug", 5)
        override.set("warn", no_reset=True)

        assert scheduler.timers[0].cancelled
        assert len(scheduler.timers) == 1
        assert override.pending is None
        assert get_log_level() == "warn"

    def test_default_duration(self, override, scheduler, monkeypatch):
        monkeypatch.setattr("tachi.settings.LOG_LEVEL_RESET_MINUTES", 2)

        override.set("debug")

        assert scheduler.timers[0].delay == 120

    def test_invalid_level(self, override, scheduler):
        with pytest.raises(ValueError):
            override.set("loud", 5)

        assert get_log_level() == "info"
        assert scheduler.timers == []


class TestContextLogger:
    """Tests for context-prefixed loggers."""

    def test_prefix(self, caplog):
        caplog.set_level(logging.DEBUG, logger="tachi")
        logger = create_log_ctx("tests", "Import abc", "User 1")

        logger.info("hello")

        assert caplog.records[-1].getMessage() == "[Import abc | User 1] hello"
        assert caplog.records[-1].name == "tachi.tests"

    def test_no_context(self, caplog):
        caplog.set_level(logging.DEBUG, logger="tachi")

        create_log_ctx("tests").info("hello")

        assert caplog.records[-1].getMessage() == "hello"

    def test_child(self, caplog):
        caplog.set_level(logging.DEBUG, logger="tachi")
        logger = create_log_ctx("tests", "Import abc").child("Chart x")

        logger.verbose("hello")

        assert caplog.records[-1].getMessage() == "[Import abc | Chart x] hello"
        assert caplog.records[-1].levelno == VERBOSE
        assert caplog.records[-1].levelname == "VERBOSE"

    def test_severe(self, caplog):
        caplog.set_level(logging.DEBUG, logger="tachi")

        create_log_ctx("tests").severe("bad")

        assert caplog.records[-1].levelname == "SEVERE"
