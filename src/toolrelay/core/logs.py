"""In-memory buffer of structured dispatch events."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Deque, Iterable, Literal

LogCategory = Literal["dispatch", "worker", "system"]
LogSeverity = Literal["info", "warning", "error"]

VALID_CATEGORIES: set[str] = {"dispatch", "worker", "system"}
VALID_SEVERITIES: set[str] = {"info", "warning", "error"}

_SECRET_PATTERNS = (
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]{8,}"),
    re.compile(r"\b(?:sk|tvly|key)-[A-Za-z0-9_-]{8,}\b"),
)


def _mask(token: str) -> str:
    if len(token) <= 8:
        return "••••"
    return f"{token[:4]}…{token[-4:]}"


def _redact(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        return _mask(match.group(0))

    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_replace, text)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _redact(value)
    return value


@dataclass(slots=True)
class LogEntry:
    """Represents a single structured log entry."""

    timestamp: datetime
    category: LogCategory
    severity: LogSeverity
    message: str
    fields: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
            **self.fields,
        }


class DispatchLog:
    """Fixed-size FIFO buffer of dispatch events with secret redaction."""

    def __init__(
        self,
        *,
        max_entries: int = 200,
        redaction_enabled: bool = True,
    ) -> None:
        self.max_entries = max(max_entries, 1)
        self._redaction_enabled = redaction_enabled
        self._entries: Deque[LogEntry] = deque(maxlen=self.max_entries)
        self._subscribers: list[Callable[[LogEntry], None]] = []

    def record(
        self,
        category: str,
        message: str,
        *,
        severity: str = "info",
        **fields: Any,
    ) -> LogEntry:
        normalized_category = category.lower()
        if normalized_category not in VALID_CATEGORIES:
            normalized_category = "system"
        normalized_severity = severity.lower()
        if normalized_severity not in VALID_SEVERITIES:
            normalized_severity = "info"
        if self._redaction_enabled:
            message = _redact(message)
            fields = {key: _redact_value(value) for key, value in fields.items()}
        entry = LogEntry(
            timestamp=datetime.now(UTC),
            category=normalized_category,  # type: ignore[arg-type]
            severity=normalized_severity,  # type: ignore[arg-type]
            message=message,
            fields=fields,
        )
        self._entries.append(entry)
        for callback in list(self._subscribers):
            callback(entry)
        return entry

    def recent(self, *, category: str | None = None, limit: int = 50) -> list[LogEntry]:
        if category is None:
            return list(self._slice_latest(limit))
        normalized_category = category.lower()
        if normalized_category not in VALID_CATEGORIES:
            normalized_category = "system"
        filtered = [entry for entry in self._entries if entry.category == normalized_category]
        return filtered[-limit:] if limit > 0 else []

    def latest(self) -> LogEntry | None:
        if not self._entries:
            return None
        return self._entries[-1]

    def subscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def __len__(self) -> int:
        return len(self._entries)

    def _slice_latest(self, limit: int) -> Iterable[LogEntry]:
        if limit <= 0:
            return []
        if limit >= len(self._entries):
            return list(self._entries)
        return list(self._entries)[-limit:]


__all__ = ["DispatchLog", "LogEntry", "LogCategory", "LogSeverity", "VALID_CATEGORIES", "VALID_SEVERITIES"]
