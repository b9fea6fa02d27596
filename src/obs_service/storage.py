from __future__ import annotations

import json
import os
from typing import Any, List, Optional

import psycopg2
import psycopg2.errors

from .config import DEFAULT_DATABASE_URL
from .models import EventGroup, EventRecord

DEFAULT_GROUP_LIMIT = 100

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
  id TEXT PRIMARY KEY,
  level TEXT NOT NULL DEFAULT 'error',
  message TEXT NOT NULL,
  stacktrace TEXT,
  platform TEXT,
  timestamp TEXT NOT NULL,
  server_name TEXT,
  environment TEXT,
  extra TEXT
);

CREATE INDEX IF NOT EXISTS idx_events_timestamp
  ON events (timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_events_message
  ON events (message);
"""


class DuplicateEventError(Exception):
  """Raised when an event id is already stored; the stored event is kept."""

  def __init__(self, event_id: str) -> None:
    super().__init__(f"Event {event_id} already exists")
    self.event_id = event_id


class EventStorage:
  """
  Storage abstraction for ingested events.

  The concrete implementation writes to Postgres using OBS_DATABASE_URL.
  Tests are expected to monkeypatch get_storage() so they do not require a
  running database.
  """

  def write_event(self, record: EventRecord) -> None:  # pragma: no cover - integration concern
    raise NotImplementedError

  def list_groups(self, limit: int = DEFAULT_GROUP_LIMIT) -> List[EventGroup]:  # pragma: no cover - integration concern
    """
    Events grouped by message, most recently seen group first.
    """
    raise NotImplementedError

  def get_event(self, event_id: str) -> Optional[EventRecord]:  # pragma: no cover - integration concern
    raise NotImplementedError


class PostgresEventStorage(EventStorage):
  def __init__(self, dsn: str) -> None:
    self._dsn = dsn

  def ensure_schema(self) -> None:  # pragma: no cover - integration concern
    conn = psycopg2.connect(self._dsn)
    try:
      with conn, conn.cursor() as cur:
        cur.execute(SCHEMA)
    finally:
      conn.close()

  def write_event(self, record: EventRecord) -> None:  # pragma: no cover - integration concern
    conn = psycopg2.connect(self._dsn)
    try:
      with conn, conn.cursor() as cur:
        cur.execute(
          """
          INSERT INTO events (
            id,
            level,
            message,
            stacktrace,
            platform,
            timestamp,
            server_name,
            environment,
            extra
          )
          VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
          """,
          _record_to_row(record),
        )
    except psycopg2.errors.UniqueViolation as exc:
      raise DuplicateEventError(record.event_id) from exc
    finally:
      conn.close()

  def list_groups(self, limit: int = DEFAULT_GROUP_LIMIT) -> List[EventGroup]:  # pragma: no cover - integration concern
    conn = psycopg2.connect(self._dsn)
    try:
      with conn, conn.cursor() as cur:
        cur.execute(
          """
          SELECT
            message,
            (ARRAY_AGG(level ORDER BY timestamp DESC))[1] AS level,
            (ARRAY_AGG(platform ORDER BY timestamp DESC))[1] AS platform,
            MAX(timestamp) AS last_seen,
            COUNT(*) AS count,
            (ARRAY_AGG(id ORDER BY timestamp DESC))[1] AS latest_event_id
          FROM events
          GROUP BY message
          ORDER BY last_seen DESC
          LIMIT %s
          """,
          (limit,),
        )
        rows = cur.fetchall()
    finally:
      conn.close()

    return [
      EventGroup(
        message=message,
        level=level,
        platform=platform,
        last_seen=last_seen,
        count=count,
        latest_event_id=latest_id,
      )
      for message, level, platform, last_seen, count, latest_id in rows
    ]

  def get_event(self, event_id: str) -> Optional[EventRecord]:  # pragma: no cover - integration concern
    conn = psycopg2.connect(self._dsn)
    try:
      with conn, conn.cursor() as cur:
        cur.execute(
          """
          SELECT id, level, message, stacktrace, platform, timestamp,
                 server_name, environment, extra
          FROM events
          WHERE id = %s
          """,
          (event_id,),
        )
        row = cur.fetchone()
    finally:
      conn.close()

    if row is None:
      return None
    return _row_to_record(row)


_storage: EventStorage | None = None


def get_storage() -> EventStorage:
  """
  Return the global storage instance.

  In tests this can be monkeypatched to avoid real DB access.
  """
  global _storage
  if _storage is None:
    dsn = os.getenv("OBS_DATABASE_URL", DEFAULT_DATABASE_URL)
    _storage = PostgresEventStorage(dsn)
  return _storage


def _dump(value: Any) -> Optional[str]:
  if value is None:
    return None
  return json.dumps(value)


def _load(value: Optional[str]) -> Any:
  if value is None:
    return None
  return json.loads(value)


def _record_to_row(record: EventRecord) -> tuple:
  return (
    record.event_id,
    record.level,
    record.message,
    _dump(record.stacktrace),
    record.platform,
    record.timestamp,
    record.server_name,
    record.environment,
    _dump(record.extra),
  )


def _row_to_record(row: tuple) -> EventRecord:
  event_id, level, message, stacktrace, platform, timestamp, server_name, environment, extra = row
  return EventRecord(
    event_id=event_id,
    level=level,
    message=message,
    stacktrace=_load(stacktrace),
    platform=platform,
    timestamp=timestamp,
    server_name=server_name,
    environment=environment,
    extra=_load(extra),
  )
