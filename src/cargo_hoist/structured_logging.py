"""
Structured logging configuration for cargo-hoist.

Every step of a hoist run emits a machine-readable trace event (dependency
considered, group classified, decision made, patch computed, patch applied).
The events are observations only; nothing in the pipeline depends on them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_RECORD_KEYS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
        }
        message = record.getMessage()
        if message:
            log_entry["message"] = message

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class HoistLogger:
    """Structured logger for hoist trace events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.run_context: Dict[str, Any] = {}

    def set_run_context(
        self,
        workspace_root: Optional[str] = None,
        member_count: Optional[int] = None,
    ) -> None:
        """Set the context attached to every event of the current run."""
        self.run_context = {}
        if workspace_root:
            self.run_context["workspace_root"] = workspace_root
        if member_count is not None:
            self.run_context["member_count"] = member_count

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        self.logger.log(level, "", extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log(logging.INFO, event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log(logging.WARNING, event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log(logging.ERROR, event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log(logging.DEBUG, event_type, **kwargs)


_BASE_LOGGER_NAME = "cargo_hoist.trace"

_pipeline_logger = HoistLogger(f"{_BASE_LOGGER_NAME}.pipeline")
_resolver_logger = HoistLogger(f"{_BASE_LOGGER_NAME}.resolver")
_writer_logger = HoistLogger(f"{_BASE_LOGGER_NAME}.writer")

_ALL_LOGGERS = (_pipeline_logger, _resolver_logger, _writer_logger)


def log_dependency_considered(
    member: str, table: str, name: str, source: Optional[str]
) -> None:
    _pipeline_logger.debug(
        "dependency_considered", member=member, table=table, dependency=name, source=source
    )


def log_entry_skipped(member: str, table: str, name: str, reason: str) -> None:
    _pipeline_logger.debug(
        "entry_skipped", member=member, table=table, dependency=name, reason=reason
    )


def log_group_classified(
    table: str, name: str, classification: str, candidates: int, members: int
) -> None:
    _pipeline_logger.info(
        "group_classified",
        table=table,
        dependency=name,
        classification=classification,
        candidate_count=candidates,
        member_count=members,
    )


def log_decision_made(
    table: str, name: str, action: str, source: Optional[str], reason: str
) -> None:
    """Log a hoist/skip decision; forced skips are raised to warning level."""
    log_data = {
        "table": table,
        "dependency": name,
        "action": action,
        "reason": reason,
    }
    if source is not None:
        log_data["source"] = source

    if reason in ("provider_failure", "cross_table_conflict"):
        _resolver_logger.warning("decision_made", **log_data)
    else:
        _resolver_logger.info("decision_made", **log_data)


def log_cross_table_conflict(name: str, tables: Dict[str, str]) -> None:
    _resolver_logger.warning("cross_table_conflict", dependency=name, tables=tables)


def log_patch_computed(target: str, entries: int) -> None:
    _pipeline_logger.info("patch_computed", target=target, entry_count=entries)


def log_patch_applied(target: str, name: str, table: Optional[str] = None) -> None:
    log_data = {"target": target, "dependency": name}
    if table is not None:
        log_data["table"] = table
    _writer_logger.debug("patch_applied", **log_data)


def log_manifest_written(path: str) -> None:
    _writer_logger.info("manifest_written", path=path)


def log_hoist_start(workspace_root: str, member_count: int) -> None:
    set_run_context(workspace_root, member_count)
    _pipeline_logger.info("hoist_started")


def log_hoist_complete(
    duration_ms: int, hoisted: int, skipped: int, conflicts: int, issues: int
) -> None:
    _pipeline_logger.info(
        "hoist_completed",
        duration_ms=duration_ms,
        hoisted_count=hoisted,
        skipped_count=skipped,
        conflict_count=conflicts,
        issue_count=issues,
    )
    clear_run_context()


def set_run_context(
    workspace_root: Optional[str] = None, member_count: Optional[int] = None
) -> None:
    """Set the run context on all trace loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(workspace_root, member_count)


def clear_run_context() -> None:
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING", enable_json: bool = True) -> None:
    """Configure the trace loggers' level and output format."""
    level = getattr(logging, log_level.upper(), logging.WARNING)

    base = logging.getLogger(_BASE_LOGGER_NAME)
    base.setLevel(level)
    for handler in list(base.handlers):
        base.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if enable_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(event_type)s")
        )
    base.addHandler(handler)
    base.propagate = False


# Initialize with default configuration
configure_logging()
