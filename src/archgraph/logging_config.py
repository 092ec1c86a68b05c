"""
Logging configuration for archgraph.

The console goes through rich and follows the CLI verbosity. An optional log
file keeps a plain-text trail of merge events: service code tags records with
``extra=event(...)`` and the file formatter appends those fields, e.g.::

    2024-05-01 10:00:00 INFO archgraph.service Module m2 merged into proj-1 as v3 [action=module_merged project=proj-1 module=m2 version=3]
"""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "archgraph"

# (record attribute, key written to the log file). Prefixed because LogRecord
# already owns ``module``.
_EVENT_ATTRS = (
    ("ag_action", "action"),
    ("ag_project", "project"),
    ("ag_module", "module"),
    ("ag_version", "version"),
)

# Marks handlers installed by setup_logging so a second call can replace them.
_HANDLER_TAG = "_archgraph_handler"


def event(
    action: str,
    project_id: str,
    module_id: Optional[str] = None,
    version: Optional[int] = None,
) -> dict[str, Any]:
    """``extra=`` mapping that tags a log record as a merge event.

    ``action`` uses the audit action names (``module_merged``,
    ``merge_blocked``, ...) so log lines and audit entries can be joined.
    """
    return {
        "ag_action": action,
        "ag_project": project_id,
        "ag_module": module_id,
        "ag_version": version,
    }


class EventFormatter(logging.Formatter):
    """Log file format: one line per record, event fields as ``[key=value ...]``."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = [
            f"{key}={getattr(record, attr)}"
            for attr, key in _EVENT_ATTRS
            if getattr(record, attr, None) is not None
        ]
        if fields:
            line = f"{line} [{' '.join(fields)}]"
        return line


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure console and file logging for the archgraph logger tree.

    The console shows WARNING and up (DEBUG with ``verbose``, ERROR only
    with ``quiet``). The log file always records INFO and up, so merges and
    rollbacks are kept even when the console is quiet.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Suppress all but ERROR level console output
        log_file: Optional file that receives the merge event trail;
                  parent directories are created

    Returns:
        Configured logger instance for archgraph
    """
    if quiet:
        console_level = logging.ERROR
    elif verbose:
        console_level = logging.DEBUG
    else:
        console_level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    for old in [h for h in logger.handlers if getattr(h, _HANDLER_TAG, False)]:
        logger.removeHandler(old)
        old.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        show_time=True,
        show_path=verbose,
    )
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(EventFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_TAG, True)
        logger.addHandler(handler)
    logger.setLevel(min(h.level for h in handlers))
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the archgraph namespace.

    Args:
        name: Module name (e.g., 'archgraph.service')
              If None, returns the root archgraph logger
    """
    if name is None:
        return logging.getLogger(LOGGER_NAME)

    if not name.startswith(LOGGER_NAME):
        name = f"{LOGGER_NAME}.{name}"

    return logging.getLogger(name)
