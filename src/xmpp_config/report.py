from __future__ import annotations

import datetime
import enum
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class OutcomeKind(enum.Enum):
    APPLIED = "applied"
    RECOVERED = "recovered"
    FATAL = "fatal"


@dataclass(frozen=True)
class Outcome:
    """Result of handling one configuration element or extension."""

    kind: OutcomeKind
    subject: str
    message: str = ""
    error: Optional[BaseException] = field(default=None, compare=False)

    @property
    def is_fatal(self) -> bool:
        return self.kind is OutcomeKind.FATAL


def applied(subject: str, message: str = "") -> Outcome:
    return Outcome(OutcomeKind.APPLIED, subject, message)


def recovered(subject: str, message: str, error: Optional[BaseException] = None) -> Outcome:
    return Outcome(OutcomeKind.RECOVERED, subject, message, error)


def fatal(subject: str, error: BaseException) -> Outcome:
    return Outcome(OutcomeKind.FATAL, subject, str(error), error)


class LoadReport:
    """Thread-safe record of what happened while a configuration document was loaded.

    Outcomes are appended in document order. Once a fatal outcome is added the
    report is considered aborted; later outcomes are still recorded so callers
    can see everything that ran before the abort was noticed.
    """

    def __init__(self, source: str = "") -> None:
        self._lock = threading.RLock()
        self._outcomes: List[Outcome] = []
        self._source = source
        self._started_at = datetime.datetime.now(tz=datetime.timezone.utc)
        self._fatal: Optional[Outcome] = None

    @property
    def source(self) -> str:
        return self._source

    @source.setter
    def source(self, value: str) -> None:
        with self._lock:
            self._source = value

    @property
    def started_at(self) -> datetime.datetime:
        return self._started_at

    def add(self, outcome: Outcome) -> Outcome:
        with self._lock:
            self._outcomes.append(outcome)
            if outcome.is_fatal and self._fatal is None:
                self._fatal = outcome
        return outcome

    def extend(self, outcomes: List[Outcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    @property
    def fatal(self) -> Optional[Outcome]:
        with self._lock:
            return self._fatal

    @property
    def ok(self) -> bool:
        return self.fatal is None

    def outcomes(self) -> List[Outcome]:
        with self._lock:
            return list(self._outcomes)

    def recovered(self) -> List[Outcome]:
        with self._lock:
            return [o for o in self._outcomes if o.kind is OutcomeKind.RECOVERED]

    def summary(self) -> Dict[str, str]:
        """Return a small summary dict describing the load."""
        with self._lock:
            counts = {kind: 0 for kind in OutcomeKind}
            for o in self._outcomes:
                counts[o.kind] += 1
            return {
                "source": self._source,
                "started_at": self._started_at.isoformat(),
                "applied": str(counts[OutcomeKind.APPLIED]),
                "recovered": str(counts[OutcomeKind.RECOVERED]),
                "fatal": self._fatal.message if self._fatal else "",
            }

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"<LoadReport source={self._source!r} outcomes={len(self._outcomes)} "
                f"ok={self._fatal is None}>"
            )
