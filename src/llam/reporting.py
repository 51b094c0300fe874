"""Progress reporting for addon operations.

The addon manager emits a ProgressEvent for every step it takes; reporters
decide how (or whether) to present them. Reporters never influence control
flow.
"""
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

# Dedicated progress logger
progress_logger = logging.getLogger("llam.progress")


class Outcome(str, Enum):
    STATUS = "status"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress event."""
    operation: str  # add, update, remove, clean, config
    phase: str  # clone, fetch, switch, pull, reset, persist, ...
    outcome: Outcome
    message: str
    addon: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


class ProgressReporter:
    """Base reporter. Subclasses override ``emit``."""

    def emit(self, event: ProgressEvent) -> None:
        pass

    def status(self, operation: str, phase: str, message: str, addon: Optional[str] = None) -> None:
        self.emit(ProgressEvent(operation, phase, Outcome.STATUS, message, addon))

    def success(self, operation: str, phase: str, message: str, addon: Optional[str] = None) -> None:
        self.emit(ProgressEvent(operation, phase, Outcome.SUCCESS, message, addon))

    def warning(self, operation: str, phase: str, message: str, addon: Optional[str] = None) -> None:
        self.emit(ProgressEvent(operation, phase, Outcome.WARNING, message, addon))

    def error(self, operation: str, phase: str, message: str, addon: Optional[str] = None) -> None:
        self.emit(ProgressEvent(operation, phase, Outcome.ERROR, message, addon))


class LoggingReporter(ProgressReporter):
    """Forwards events to the ``llam.progress`` logger."""

    LEVELS = {
        Outcome.STATUS: logging.DEBUG,
        Outcome.SUCCESS: logging.INFO,
        Outcome.WARNING: logging.WARNING,
        Outcome.ERROR: logging.ERROR,
    }

    def emit(self, event: ProgressEvent) -> None:
        prefix = f"[{event.addon}] " if event.addon else ""
        progress_logger.log(
            self.LEVELS[event.outcome],
            f"{prefix}{event.message}",
            extra={"progress": event.to_dict()},
        )

