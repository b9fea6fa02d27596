HEADERS = {"X-OBS-Key": "testkey"}


def _ingest(gateway, **fields):
  resp = gateway.post("/api/events", json=fields, headers=HEADERS)
  assert resp.status_code == 201
  return resp.json()["id"]


def test_groups_by_message_most_recent_first(gateway):
  _ingest(gateway, message="db down", timestamp="2024-01-01 10:00:00")
  latest_db = _ingest(gateway, message="db down", timestamp="2024-01-01 12:00:00", platform="python")
  _ingest(gateway, message="cache miss", timestamp="2024-01-01 11:00:00", level="info")

  resp = gateway.get("/api/events", headers=HEADERS)

  assert resp.status_code == 200
  groups = resp.json()["groups"]
  assert [g["message"] for g in groups] == ["db down", "cache miss"]
  assert groups[0]["count"] == 2
  assert groups[0]["last_seen"] == "2024-01-01 12:00:00"
  assert groups[0]["latest_event_id"] == latest_db
  assert groups[0]["platform"] == "python"
  assert groups[1]["level"] == "info"


def test_groups_respect_limit(gateway):
  for i in range(3):
    _ingest(gateway, message=f"m{i}", timestamp=f"2024-01-01 10:00:0{i}")

  groups = gateway.get("/api/events", params={"limit": 2}, headers=HEADERS).json()["groups"]
  assert [g["message"] for g in groups] == ["m2", "m1"]


def test_event_detail_includes_payload(gateway):
  event_id = _ingest(
    gateway,
    message="boom",
    stacktrace=[{"filename": "a.py", "function": "(throw)", "lineno": 1}],
    extra={"user": "u-1"},
  )

  resp = gateway.get(f"/api/events/{event_id}", headers=HEADERS)

  assert resp.status_code == 200
  data = resp.json()
  assert data["event_id"] == event_id
  assert data["stacktrace"] == [{"filename": "a.py", "function": "(throw)", "lineno": 1}]
  assert data["extra"] == {"user": "u-1"}


def test_event_detail_not_found(gateway):
  resp = gateway.get("/api/events/does-not-exist", headers=HEADERS)
  assert resp.status_code == 404
  assert resp.json() == {"error": "Event not found"}


def test_read_endpoints_require_key(gateway):
  assert gateway.get("/api/events").status_code == 401
  assert gateway.get("/api/events/anything").status_code == 401


def test_read_endpoints_report_storage_failure(failing_gateway):
  assert failing_gateway.get("/api/events", headers=HEADERS).status_code == 500
  assert failing_gateway.get("/api/events/x", headers=HEADERS).status_code == 500


def test_invalid_limit_uses_error_shape(gateway):
  for limit in ("0", "5000", "many"):
    resp = gateway.get("/api/events", params={"limit": limit}, headers=HEADERS)
    assert resp.status_code == 400
    body = resp.json()
    assert set(body) == {"error"}
    assert "limit" in body["error"]
