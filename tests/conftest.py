from collections import OrderedDict
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

import obs_client  # type: ignore[import]
from obs_service import storage as storage_mod  # type: ignore[import]
from obs_service.api import app  # type: ignore[import]
from obs_service.models import EventGroup, EventRecord  # type: ignore[import]

API_KEY = "testkey"


class MemoryStorage(storage_mod.EventStorage):  # type: ignore[misc]
  """Dict-backed storage standing in for Postgres."""

  def __init__(self) -> None:
    self.events: "OrderedDict[str, EventRecord]" = OrderedDict()

  def write_event(self, record):
    if record.event_id in self.events:
      raise storage_mod.DuplicateEventError(record.event_id)
    self.events[record.event_id] = record

  def list_groups(self, limit: int = 100) -> List[EventGroup]:
    grouped = {}
    for record in self.events.values():
      grouped.setdefault(record.message, []).append(record)

    groups = []
    for message, records in grouped.items():
      latest = max(records, key=lambda r: r.timestamp)
      groups.append(
        EventGroup(
          message=message,
          level=latest.level,
          platform=latest.platform,
          last_seen=latest.timestamp,
          count=len(records),
          latest_event_id=latest.event_id,
        )
      )
    groups.sort(key=lambda g: g.last_seen, reverse=True)
    return groups[:limit]

  def get_event(self, event_id: str) -> Optional[EventRecord]:
    return self.events.get(event_id)


class FailingStorage(storage_mod.EventStorage):  # type: ignore[misc]
  def write_event(self, record):
    raise RuntimeError("database unavailable")

  def list_groups(self, limit: int = 100):
    raise RuntimeError("database unavailable")

  def get_event(self, event_id):
    raise RuntimeError("database unavailable")


@pytest.fixture
def memory_storage(monkeypatch):
  backend = MemoryStorage()
  monkeypatch.setattr(storage_mod, "get_storage", lambda: backend)
  return backend


@pytest.fixture
def gateway(monkeypatch, memory_storage):
  monkeypatch.setenv("OBS_API_KEY", API_KEY)
  return TestClient(app)


@pytest.fixture(autouse=True)
def _reset_default_client():
  yield
  obs_client.close(timeout=0.5)


@pytest.fixture
def failing_gateway(monkeypatch):
  monkeypatch.setenv("OBS_API_KEY", API_KEY)
  monkeypatch.setattr(storage_mod, "get_storage", lambda: FailingStorage())
  return TestClient(app)
