"""Logging setup rendering log records as GitHub Actions workflow commands."""

import logging
import sys

_WORKFLOW_COMMANDS: dict[int, str] = {
    logging.DEBUG: "debug",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def _escape(message: str) -> str:
    # workflow command data must not contain raw newlines or percent signs
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class ActionsFormatter(logging.Formatter):
    """Format warnings, errors and debug records so GitHub Actions highlights them.

    Info records are printed as plain lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Prefix the record with the workflow command matching its level."""
        message = super().format(record)
        command = _WORKFLOW_COMMANDS.get(record.levelno)
        if command is None:
            return message
        return f"::{command}::{_escape(message)}"


def configure_logging(*, debug: bool = False) -> None:
    """Route all log output through an ``ActionsFormatter`` on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ActionsFormatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
