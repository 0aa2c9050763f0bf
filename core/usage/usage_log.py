"""Best-effort usage logging for generated documents."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("docgen.usage")

IST = timezone(timedelta(hours=5, minutes=30), name="IST")

_PARTY_KEYS = ("company", "COMPANY", "companyName", "COMPANY_NAME", "Company", "TO")


@dataclass(frozen=True)
class UsageEvent:
    """One usage log row: user, party, document type, IST timestamp."""

    user: str
    party: str
    document_type: str
    timestamp: str

    @classmethod
    def now(cls, *, user: str | None, party: str, document_type: str) -> UsageEvent:
        return cls(
            user=user or "",
            party=party,
            document_type=document_type,
            timestamp=datetime.now(IST).strftime("%Y-%m-%d %H:%M:%S"),
        )


class UsageLog(Protocol):
    """Append-only usage log collaborator."""

    def record(self, event: UsageEvent) -> None:
        """Persist one event; may raise on backend failure."""


class LoggerUsageLog:
    """Emit usage events as JSON lines on the ``docgen.usage`` logger."""

    def record(self, event: UsageEvent) -> None:
        logger.info(_dump_json({"event": "usage", **asdict(event)}))


class JsonlUsageLog:
    """Append usage events to a local JSON-lines file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: UsageEvent) -> None:
        line = _dump_json(asdict(event)) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)


class UsageRecorder:
    """Submit usage events to a log on a background thread.

    ``submit`` never raises and never blocks on the backend; the returned
    future resolves to False when recording failed.
    """

    def __init__(self, usage_log: UsageLog) -> None:
        self._usage_log = usage_log
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docgen-usage")

    @property
    def usage_log(self) -> UsageLog:
        return self._usage_log

    def submit(self, event: UsageEvent) -> Future:
        try:
            return self._executor.submit(self._record_safely, event)
        except RuntimeError as exc:
            logger.error(_dump_json({"event": "usage_error", "error": str(exc)}))
            failed: Future = Future()
            failed.set_result(False)
            return failed

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _record_safely(self, event: UsageEvent) -> bool:
        try:
            self._usage_log.record(event)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                _dump_json(
                    {
                        "event": "usage_error",
                        "document_type": event.document_type,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    }
                )
            )
            return False
        return True


def party_from_payload(payload: Mapping[str, Any]) -> str:
    """Pick the company-like party name; invoices fall back to ``TO``."""

    for key in _PARTY_KEYS:
        value = payload.get(key)
        if value is not None:
            return str(value)
    for key, value in payload.items():
        if "company" in str(key).lower():
            return "" if value is None else str(value)
    return ""


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
