from __future__ import annotations

import logging

# Named loggers used across the workflow. The audit logger emits one JSON
# object per message and is formatted as-is.
WORKFLOW_LOGGERS = ("review", "regeneration", "drafting", "telecare.db")

formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def configure_logging(level: str = "INFO") -> None:
    """Attach a console handler to the workflow loggers at ``level``.

    Safe to call more than once; handlers are only added the first time.
    """

    resolved = getattr(logging, level.upper(), logging.INFO)

    for name in WORKFLOW_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(resolved)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    audit_logger = logging.getLogger("audit")
    audit_logger.setLevel(logging.INFO)
    if not audit_logger.handlers:
        audit_logger.addHandler(logging.StreamHandler())
