from __future__ import annotations

import logging

from chatcore.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

log = logging.getLogger("chatcore")

_configured = False

def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    # uvicorn's access log duplicates the metrics middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
