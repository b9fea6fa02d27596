from __future__ import annotations

import hmac
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import status as status_mod
from . import storage
from .config import GatewayConfig
from .models import DEFAULT_LEVEL, LEVELS, TIMESTAMP_FORMAT, EventRecord

API_KEY_HEADER = "X-OBS-Key"

logger = logging.getLogger(__name__)

app = FastAPI(title="obs ingestion gateway", version=status_mod.VERSION)

# CORS configuration for browser clients, configurable via OBS_CORS_ORIGINS
app.add_middleware(
  CORSMiddleware,
  allow_origins=GatewayConfig.from_env().cors_origins,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


class IngestionError(Exception):
  """A request the gateway answers with ``{"error": ...}``."""

  def __init__(self, status_code: int, message: str) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message


@app.exception_handler(IngestionError)
async def _ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  fields = ", ".join(".".join(str(part) for part in err.get("loc", ())) for err in exc.errors())
  return JSONResponse(
    status_code=status.HTTP_400_BAD_REQUEST,
    content={"error": f"Invalid request parameter(s): {fields}"},
  )


def _check_api_key(request: Request) -> None:
  expected = GatewayConfig.from_env().api_key
  if not expected:
    raise IngestionError(status.HTTP_500_INTERNAL_SERVER_ERROR, "OBS_API_KEY not configured")

  provided = request.headers.get(API_KEY_HEADER, "")
  if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
    raise IngestionError(status.HTTP_401_UNAUTHORIZED, "Invalid API key")


def current_timestamp() -> str:
  return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def normalize_event(data: Dict[str, Any]) -> EventRecord:
  """
  Apply server-side defaults to a decoded event body.

  Missing ids and timestamps are generated, and a missing or unknown
  level becomes ``error``. Raises IngestionError for a missing message.
  """
  message = data.get("message")
  if message is None or message == "":
    raise IngestionError(status.HTTP_400_BAD_REQUEST, "Missing required field: message")

  level = data.get("level")
  if level not in LEVELS:
    level = DEFAULT_LEVEL

  try:
    return EventRecord(
      event_id=data.get("event_id") or str(uuid.uuid4()),
      level=level,
      message=str(message),
      timestamp=data.get("timestamp") or current_timestamp(),
      stacktrace=data.get("stacktrace"),
      platform=data.get("platform"),
      server_name=data.get("server_name"),
      environment=data.get("environment"),
      extra=data.get("extra"),
    )
  except ValidationError as exc:
    raise IngestionError(
      status.HTTP_400_BAD_REQUEST,
      f"Invalid event: {exc.error_count()} field(s) failed validation",
    ) from exc


@app.get("/status")
async def status_endpoint() -> Dict[str, object]:
  """
  Lightweight status endpoint for the gateway.
  """
  return status_mod.get_status()


@app.post("/api/events", status_code=status.HTTP_201_CREATED)
async def ingest_event(request: Request) -> JSONResponse:
  """
  Ingestion endpoint: one JSON event per request.
  """
  _check_api_key(request)

  raw = await request.body()
  try:
    data = json.loads(raw)
  except ValueError:
    raise IngestionError(status.HTTP_400_BAD_REQUEST, "Invalid JSON")
  if not isinstance(data, dict):
    raise IngestionError(status.HTTP_400_BAD_REQUEST, "Invalid JSON")

  record = normalize_event(data)

  backend = storage.get_storage()
  try:
    await run_in_threadpool(backend.write_event, record)
  except storage.DuplicateEventError:
    logger.warning("Rejected duplicate event %s", record.event_id)
    raise IngestionError(status.HTTP_409_CONFLICT, f"Event {record.event_id} already exists")
  except Exception:
    logger.exception("Failed to store event %s", record.event_id)
    raise IngestionError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to store event")

  return JSONResponse(status_code=status.HTTP_201_CREATED, content={"id": record.event_id})


@app.get("/api/events")
async def list_event_groups(
  request: Request,
  limit: int = Query(storage.DEFAULT_GROUP_LIMIT, ge=1, le=1000),
) -> Dict[str, object]:
  """
  Events grouped by message with count and last-seen time, newest first.
  """
  _check_api_key(request)

  backend = storage.get_storage()
  try:
    groups = await run_in_threadpool(backend.list_groups, limit)
  except Exception:
    logger.exception("Failed to query event groups")
    raise IngestionError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to query events")

  return {"groups": [g.model_dump() for g in groups]}


@app.get("/api/events/{event_id}")
async def get_event(request: Request, event_id: str) -> Dict[str, object]:
  """
  One event, including its stacktrace and extra payload.
  """
  _check_api_key(request)

  backend = storage.get_storage()
  try:
    record: Optional[EventRecord] = await run_in_threadpool(backend.get_event, event_id)
  except Exception:
    logger.exception("Failed to load event %s", event_id)
    raise IngestionError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to query events")

  if record is None:
    raise IngestionError(status.HTTP_404_NOT_FOUND, "Event not found")
  return record.model_dump()
