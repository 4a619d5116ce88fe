"""Shared logging helpers for the operator."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: INFO level
    and a terse format that keeps worker thread names visible, since reconciles for
    different keys interleave. Pass ``force=True`` to reconfigure during tests.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] (%(threadName)s) %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )


def parse_log_level(value: str | None, *, default: int = logging.INFO) -> int:
    """Translate a level name such as ``"debug"`` into a logging constant."""

    if not value:
        return default
    level = logging.getLevelNamesMapping().get(value.strip().upper())
    if level is None:
        raise ValueError(f"Unknown log level: {value}")
    return level
