"""Execution journal: OTel spans from the runner persisted to SQLite."""

import logging
import sqlite3
import json
import time
from dataclasses import dataclass
from datetime import datetime

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter, SpanExportResult

from gbx_cli.config import JOURNAL_DB

logger = logging.getLogger(__name__)

EXECUTE_SPAN = "process.execute"

# WAL concurrency settings
_BUSY_TIMEOUT_MS = 5000
_EXPORT_MAX_RETRIES = 3
_EXPORT_RETRY_BASE_SECONDS = 0.1


class SQLiteSpanExporter(SpanExporter):
    def __init__(self, db_path: str = str(JOURNAL_DB)):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        """Open a connection with WAL mode and busy_timeout for concurrent access."""
        conn = sqlite3.connect(self.db_path)
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._connect() as conn:
            # Schema follows OTel data model: https://opentelemetry.io/docs/specs/otel/trace/api/
            conn.execute("""
                CREATE TABLE IF NOT EXISTS spans (
                    id TEXT PRIMARY KEY,
                    trace_id TEXT NOT NULL,
                    parent_id TEXT,
                    name TEXT NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER,
                    duration_ms REAL,
                    status_code TEXT,
                    status_description TEXT,
                    attributes TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_spans_name ON spans(name)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_spans_start ON spans(start_time DESC)")

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        rows = []
        for span in spans:
            span_id = format(span.context.span_id, '016x')
            trace_id = format(span.context.trace_id, '032x')
            parent_id = format(span.parent.span_id, '016x') if span.parent else None

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) / 1_000_000

            status_code = "UNSET"
            status_description = None
            if span.status:
                status_code = span.status.status_code.name
                status_description = span.status.description

            rows.append((
                span_id,
                trace_id,
                parent_id,
                span.name,
                span.start_time,
                span.end_time,
                duration_ms,
                status_code,
                status_description,
                json.dumps(dict(span.attributes) if span.attributes else {}),
            ))

        # Retry with exponential backoff for transient lock contention
        for attempt in range(_EXPORT_MAX_RETRIES):
            try:
                with self._connect() as conn:
                    conn.executemany(
                        "INSERT OR REPLACE INTO spans VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        rows,
                    )
                return SpanExportResult.SUCCESS
            except sqlite3.OperationalError as exc:
                if "locked" in str(exc) and attempt < _EXPORT_MAX_RETRIES - 1:
                    delay = _EXPORT_RETRY_BASE_SECONDS * (2 ** attempt)
                    logger.warning("journal export retry %d/%d after lock: %s", attempt + 1, _EXPORT_MAX_RETRIES, exc)
                    time.sleep(delay)
                else:
                    logger.error("journal export failed: %s", exc)
                    return SpanExportResult.FAILURE
        return SpanExportResult.FAILURE

    def shutdown(self):
        pass


def setup_journal(version: str, db_path: str = str(JOURNAL_DB)) -> TracerProvider:
    """Install a global TracerProvider that journals spans to *db_path*.

    Must run before the first execution; OTel accepts one global provider.
    """
    provider = TracerProvider(resource=Resource.create({
        "service.name": "gbx-cli",
        "service.version": version,
    }))
    provider.add_span_processor(BatchSpanProcessor(SQLiteSpanExporter(db_path)))
    trace.set_tracer_provider(provider)
    return provider


@dataclass
class JournalEntry:
    started: datetime
    command: str
    cwd: str
    duration_ms: float | None
    exit_code: int | None  # None when the run timed out or failed to spawn
    timed_out: bool
    status: str


def recent_executions(limit: int = 20, db_path: str = str(JOURNAL_DB)) -> list[JournalEntry]:
    """Return the newest journaled executions, newest first."""
    try:
        with sqlite3.connect(db_path) as conn:
            rows = conn.execute(
                "SELECT start_time, duration_ms, status_code, attributes FROM spans"
                " WHERE name = ? ORDER BY start_time DESC LIMIT ?",
                (EXECUTE_SPAN, limit),
            ).fetchall()
    except sqlite3.OperationalError as exc:
        # Missing table: nothing has been journaled yet
        logger.debug("journal read failed: %s", exc)
        return []

    entries = []
    for start_time, duration_ms, status_code, attributes in rows:
        attrs = json.loads(attributes or "{}")
        entries.append(JournalEntry(
            started=datetime.fromtimestamp(start_time / 1_000_000_000),
            command=attrs.get("process.command", ""),
            cwd=attrs.get("process.cwd", ""),
            duration_ms=duration_ms,
            exit_code=attrs.get("process.exit_code"),
            timed_out=bool(attrs.get("process.timed_out", False)),
            status=status_code,
        ))
    return entries
