from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import IntEnum
from typing import Any
from typing import Protocol

import tachi.settings

VERBOSE = 15
SEVERE = 45

logging.addLevelName(VERBOSE, "VERBOSE")
logging.addLevelName(SEVERE, "SEVERE")

LOG_LEVELS: dict[str, int] = {
    "crit": logging.CRITICAL,
    "severe": SEVERE,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
}

ROOT_LOGGER = logging.getLogger("tachi")


class Ansi(IntEnum):
    # Default colours
    BLACK = 30
    RED = 31
    GREEN = 32
    YELLOW = 33
    BLUE = 34
    MAGENTA = 35
    CYAN = 36
    WHITE = 37

    # Light colours
    GRAY = 90
    LRED = 91
    LGREEN = 92
    LYELLOW = 93
    LBLUE = 94
    LMAGENTA = 95
    LCYAN = 96
    LWHITE = 97

    RESET = 0

    def __repr__(self) -> str:
        return f"\x1b[{self.value}m"


def configure_logging(level: str | None = None) -> None:
    level = level or tachi.settings.LOG_LEVEL

    if not ROOT_LOGGER.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ),
        )
        ROOT_LOGGER.addHandler(handler)

    ROOT_LOGGER.setLevel(LOG_LEVELS[level])


def log(
    msg: str,
    start_color: Ansi | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """\
    A thin wrapper around the stdlib logging module to handle mostly
    backwards-compatibility for colours during our migration to the
    standard library logging module.
    """
    if start_color is Ansi.LYELLOW:
        log_level = logging.WARNING
    elif start_color is Ansi.LRED:
        log_level = logging.ERROR
    else:
        log_level = logging.INFO

    if tachi.settings.LOG_WITH_COLORS and start_color is not None:
        color_prefix = f"{start_color!r}"
        color_suffix = f"{Ansi.RESET!r}"
    else:
        color_prefix = color_suffix = ""

    ROOT_LOGGER.log(log_level, f"{color_prefix}{msg}{color_suffix}", extra=extra)


class ContextLogger(logging.LoggerAdapter):
    """A logger that prefixes every message with its context, e.g. `[Import x | User 1]`."""

    def __init__(self, logger: logging.Logger, context: tuple[str, ...]) -> None:
        super().__init__(logger, {"context": context})
        self.context = context

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        if self.context:
            return f"[{' | '.join(self.context)}] {msg}", kwargs

        return msg, kwargs

    def verbose(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(VERBOSE, msg, *args, **kwargs)

    def severe(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(SEVERE, msg, *args, **kwargs)

    def child(self, *context: str) -> ContextLogger:
        return ContextLogger(self.logger, self.context + tuple(context))


def create_log_ctx(name: str, *context: str) -> ContextLogger:
    return ContextLogger(ROOT_LOGGER.getChild(name), tuple(context))


def get_log_level() -> str:
    for name, value in LOG_LEVELS.items():
        if value == ROOT_LOGGER.level:
            return name

    return logging.getLevelName(ROOT_LOGGER.level).lower()


def change_root_log_level(level: str) -> None:
    ROOT_LOGGER.setLevel(LOG_LEVELS[level])


class Cancellable(Protocol):
    def cancel(self) -> Any:
        ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    return asyncio.get_running_loop().call_later(delay, callback)


class LogLevelOverride:
    """\
    Temporarily overrides the root log level.

    Every override schedules a revert to `default_level`. A newer override
    cancels the pending revert, so there is at most one outstanding timer.
    """

    def __init__(
        self,
        default_level: str | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        self.default_level = default_level or tachi.settings.LOG_LEVEL
        self.schedule = schedule or _loop_scheduler
        self.pending: Cancellable | None = None
        self.logger = create_log_ctx(__name__, "Log Level")

    def set(
        self,
        level: str,
        duration_minutes: float | None = None,
        no_reset: bool = False,
    ) -> str:
        """Change the root log level, returning the level that was replaced."""
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level {level!r}.")

        previous = get_log_level()
        change_root_log_level(level)

        if self.pending is not None:
            self.logger.verbose(f"Removing last timer to reset log level to {self.default_level}.")
            self.pending.cancel()
            self.pending = None

        self.logger.info(f"Log level has been changed to {level}.")

        if not no_reset:
            if duration_minutes is None:
                duration_minutes = tachi.settings.LOG_LEVEL_RESET_MINUTES

            self.logger.info(
                f'This will reset to "{self.default_level}" level in {duration_minutes} minutes.',
            )
            self.pending = self.schedule(duration_minutes * 60, self.reset)

        return previous

    def reset(self) -> None:
        self.pending = None
        change_root_log_level(self.default_level)
        self.logger.info(f"Reset log level back to {self.default_level}.")
