from __future__ import annotations

import logging

from backend.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; later calls only adjust the level.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if not any(getattr(h, "_storefront", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront = True  # type: ignore[attr-defined]
        root.addHandler(handler)
