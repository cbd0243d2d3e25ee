from __future__ import annotations

import logging

from sqlalchemy import Engine

from pdp.db.base import Base
from pdp.models import policy  # noqa: F401  registers the tables on Base.metadata

logger = logging.getLogger(__name__)


def init_db(engine: Engine) -> None:
    """Create the audit, grant and relationship tables if they are missing."""

    Base.metadata.create_all(bind=engine)
    logger.info("Policy tables ready on %s", engine.url.render_as_string(hide_password=True))
