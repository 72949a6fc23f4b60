"""Root logger configuration shared by the app and the maintenance script."""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the root logger.

    Calling it again only adjusts the level, so `create_app()` may run
    several times in one process (tests) without duplicating output.
    """
    global _configured
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)

    # httpx logs every request line at INFO, which would leak the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
