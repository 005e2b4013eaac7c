"""Logging setup helpers for profile-refresher."""

from __future__ import annotations

import logging

LOGGER_NAME = "profile_refresher"
LOG_PREFIX = "routine_profile_refresh"


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or LOGGER_NAME)
