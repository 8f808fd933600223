"""Append-only audit trail for payment notifications."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

AUDIT_LOGGER_NAME = "piprapay.ipn"


def _dump(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    return json.dumps(value, default=str)


class AuditLog:
    """One human-readable line per IPN handling step.

    Backed by a standard ``logging.Logger`` so the sink can be swapped for a
    file, the console or a test capture without touching the adapter.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def event(self, message: str) -> None:
        self._logger.info(message)

    def failure(self, message: str) -> None:
        self._logger.warning(message)

    def record(self, label: str, value: Any) -> None:
        self._logger.info("%s: %s", label, _dump(value))


def configure_audit_log(
    path: Union[str, Path],
    logger_name: str = AUDIT_LOGGER_NAME,
) -> logging.FileHandler:
    """Attach an append-mode file handler to the audit logger.

    Calling it again for the same path reuses the existing handler.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    target = str(Path(path).resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return handler

    handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    logger.addHandler(handler)
    return handler
