from __future__ import annotations

import logging


def configure_logging(level: str = "INFO") -> None:
    """
    Set the level for every ``pdp.*`` logger.

    Handlers belong to the host application; this only sets levels for our
    package. DENY decisions are logged at WARNING, so ``PDP_LOG_LEVEL=WARNING``
    keeps denials and drops the per-request ALLOW lines.
    """

    normalized = level.upper()
    if normalized not in logging.getLevelNamesMapping():
        raise ValueError(f"unknown log level: {level}")
    logging.getLogger("pdp").setLevel(normalized)
    logging.getLogger("pdp").propagate = True
