"""Diagnostic report: severity-tagged messages collected during validation.

Key Responsibilities:
    - Define the three-level severity scale and the immutable message record
    - Accumulate messages in emission order and combine reports by merging
    - Decide validity: a report is valid exactly when it holds no ERROR

Collaborators:
    - Upstream: Every checker returns a :class:`Report`
    - Downstream: The orchestrator merges stage reports; the CLI renders them

Side Effects:
    - None

Thread Safety:
    - A report is owned by the run that builds it; :meth:`Report.merge`
      returns a fresh instance so finished reports can be shared read-only
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = ["Message", "Report", "Severity"]

# ==============================================================================
# DATA MODELS
# ==============================================================================


class Severity(str, Enum):
    """Message severity. Only ERROR affects validity."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


@dataclass(frozen=True, slots=True)
class Message:
    """A single diagnostic.

    Attributes:
        severity: INFO, WARNING or ERROR.
        text: Human readable description.
        path: Structural locator such as ``ContentSequence[0].UID``; empty for
            the dataset root.
        source: Name of the check that produced the message.
    """

    severity: Severity
    text: str
    path: str = ""
    source: str | None = None

    def __str__(self) -> str:
        location = f" {self.path}:" if self.path else ""
        return f"[{self.severity.value}]{location} {self.text}"

    def model_dump(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"severity": self.severity.value, "text": self.text}
        if self.path:
            payload["path"] = self.path
        if self.source:
            payload["source"] = self.source
        return payload


class Report:
    """Ordered, append-only collection of :class:`Message` records."""

    __slots__ = ("_messages",)

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def add_message(
        self,
        severity: Severity,
        text: str,
        path: str = "",
        source: str | None = None,
    ) -> Message:
        message = Message(Severity(severity), text, path, source)
        self._messages.append(message)
        return message

    def add_error(self, text: str, path: str = "", source: str | None = None) -> Message:
        return self.add_message(Severity.ERROR, text, path, source)

    def add_warning(self, text: str, path: str = "", source: str | None = None) -> Message:
        return self.add_message(Severity.WARNING, text, path, source)

    def add_info(self, text: str, path: str = "", source: str | None = None) -> Message:
        return self.add_message(Severity.INFO, text, path, source)

    def merge(self, other: Report) -> Report:
        """Return a new report holding this report's messages followed by ``other``'s."""
        return Report([*self._messages, *other._messages])

    @classmethod
    def merged(cls, *reports: Report) -> Report:
        combined = cls()
        for report in reports:
            combined._messages.extend(report._messages)
        return combined

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_valid(self) -> bool:
        return not any(message.severity is Severity.ERROR for message in self._messages)

    def messages_of(self, severity: Severity) -> list[Message]:
        wanted = Severity(severity)
        return [message for message in self._messages if message.severity is wanted]

    def at_least(self, severity: Severity) -> list[Message]:
        """Messages whose severity ranks at or above ``severity``."""
        floor = Severity(severity).rank
        return [message for message in self._messages if message.severity.rank >= floor]

    @property
    def errors(self) -> list[Message]:
        return self.messages_of(Severity.ERROR)

    @property
    def warnings(self) -> list[Message]:
        return self.messages_of(Severity.WARNING)

    @property
    def infos(self) -> list[Message]:
        return self.messages_of(Severity.INFO)

    def counts(self) -> dict[str, int]:
        return {severity.value: len(self.messages_of(severity)) for severity in Severity}

    def model_dump(self, *, include_info: bool = True) -> dict[str, Any]:
        messages = self._messages if include_info else self.at_least(Severity.WARNING)
        return {
            "valid": self.is_valid,
            "counts": self.counts(),
            "messages": [message.model_dump() for message in messages],
        }

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Report):
            return NotImplemented
        return self._messages == other._messages

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        counts = ", ".join(f"{key}={value}" for key, value in self.counts().items())
        return f"Report(valid={self.is_valid}, {counts})"
