"""Safety session API endpoints.

This is the thin FastAPI adapter. It parses JSON request bodies into internal
models and calls the session facade.
"""

from __future__ import annotations

import asyncio
import json
import math
import uuid

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from safeguard.core.models import EmergencyContact
from safeguard.core.session import LocationContext

router = APIRouter(prefix="/api/v1")

MAX_SPEED_KMH = 1000.0
# 2100-01-01T00:00:00Z
MAX_TIMESTAMP_MS = 4_102_444_800_000


class BadRequest(ValueError):
    pass


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(content={"success": False, "error": message}, status_code=status)


async def _json_body(request: Request) -> dict:
    body_bytes = await request.body()
    if not body_bytes:
        return {}
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("invalid JSON") from None
    if not isinstance(body, dict):
        raise BadRequest("JSON body must be an object")
    return body


def _parse_contact(data: dict) -> EmergencyContact:
    """Parse one emergency contact. Addresses are validated later, per channel."""
    if not isinstance(data, dict):
        raise BadRequest("contact must be an object")
    return EmergencyContact(
        id=str(data.get("id") or uuid.uuid4().hex[:8]),
        name=str(data.get("name", "")),
        phone=data.get("phone") or None,
        email=data.get("email") or None,
        chat_id=str(data["chat_id"]) if data.get("chat_id") else None,
        push_subscription=data.get("push_subscription") or None,
    )


def _parse_contacts(raw) -> list[EmergencyContact]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BadRequest("contacts must be a list")
    return [_parse_contact(c) for c in raw]


def _parse_route(raw) -> tuple[tuple[float, float], ...] | None:
    """Accept [[lat, lng], ...] or [{"lat": .., "lng": ..}, ...]."""
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BadRequest("expected_route must be a list")
    points = []
    try:
        for point in raw:
            if isinstance(point, dict):
                points.append((float(point["lat"]), float(point["lng"])))
            else:
                lat, lng = point
                points.append((float(lat), float(lng)))
    except (KeyError, TypeError, ValueError):
        raise BadRequest("expected_route points must be [lat, lng] pairs") from None
    return tuple(points)


def _parse_coordinates(body: dict) -> tuple[float, float]:
    try:
        lat = float(body["lat"])
        lng = float(body["lng"])
    except (KeyError, TypeError, ValueError):
        raise BadRequest("lat and lng are required numbers") from None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise BadRequest("lat/lng out of range")
    return lat, lng


def _parse_speed(raw) -> float | None:
    if raw is None:
        return None
    try:
        speed = float(raw)
    except (TypeError, ValueError):
        raise BadRequest("speed_kmh must be a number") from None
    if not math.isfinite(speed) or not 0 <= speed <= MAX_SPEED_KMH:
        raise BadRequest("speed_kmh out of range")
    return speed


def _parse_timestamp(raw) -> int | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise BadRequest("timestamp_ms must be a number") from None
    if not math.isfinite(value) or not 0 < value < MAX_TIMESTAMP_MS:
        raise BadRequest("timestamp_ms out of range")
    return int(value)


def _parse_context(raw) -> LocationContext:
    ctx = raw or {}
    if not isinstance(ctx, dict):
        raise BadRequest("context must be an object")
    try:
        return LocationContext(
            voice_emotion=str(ctx.get("voice_emotion") or "neutral"),
            ambient_light=str(ctx.get("ambient_light") or "normal"),
            location_zone=str(ctx.get("location_zone") or "urban"),
            time_of_day=ctx.get("time_of_day") or None,
            speed_kmh=_parse_speed(ctx.get("speed_kmh")),
            captured_at_ms=_parse_timestamp(ctx.get("timestamp_ms")),
            expected_route=_parse_route(ctx.get("expected_route")),
        )
    except BadRequest:
        raise
    except (TypeError, ValueError):
        raise BadRequest("invalid context values") from None


def _find_session(session_id: str):
    from safeguard.main import get_registry

    return get_registry().get(session_id)


@router.post("/sessions")
async def create_session(request: Request) -> JSONResponse:
    """Create (or reuse) a safety session with its emergency contacts."""
    from safeguard.main import get_registry

    try:
        body = await _json_body(request)
        contacts = _parse_contacts(body.get("contacts"))
        route = _parse_route(body.get("expected_route"))
    except BadRequest as exc:
        return _error(400, str(exc))

    session = get_registry().create(body.get("session_id"), contacts, route)
    return JSONResponse(
        content={"success": True, "session_id": session.session_id,
                 "contacts": len(session.contacts)},
        status_code=201,
    )


@router.put("/sessions/{session_id}/contacts")
async def replace_contacts(session_id: str, request: Request) -> JSONResponse:
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    try:
        body = await _json_body(request)
        contacts = _parse_contacts(body.get("contacts"))
    except BadRequest as exc:
        return _error(400, str(exc))
    session.set_contacts(contacts)
    return JSONResponse(content={"success": True, "contacts": len(contacts)})


@router.post("/sessions/{session_id}/location")
async def update_location(session_id: str, request: Request) -> JSONResponse:
    """Primary ingestion point: a new location with optional context signals."""
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    try:
        body = await _json_body(request)
        lat, lng = _parse_coordinates(body)
        context = _parse_context(body.get("context"))
    except BadRequest as exc:
        return _error(400, str(exc))

    result = await session.update_location(lat, lng, context)
    return JSONResponse(content={"success": True, **result})


@router.post("/sessions/{session_id}/sos")
async def manual_sos(
    session_id: str,
    request: Request,
    wait: bool = Query(default=True),
) -> JSONResponse:
    """Manual SOS. Never suppressed by the automatic-trigger cooldown."""
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    try:
        body = await _json_body(request)
        contacts = _parse_contacts(body.get("contacts"))
    except BadRequest as exc:
        return _error(400, str(exc))

    result = await session.trigger_manual_sos(contacts or None, wait=wait)
    return JSONResponse(content={"success": True, **result})


@router.get("/sessions/{session_id}/status")
async def session_status(session_id: str) -> JSONResponse:
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    return JSONResponse(content=await session.get_status())


@router.post("/sessions/{session_id}/sharing")
async def start_sharing(session_id: str, request: Request) -> JSONResponse:
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    try:
        body = await _json_body(request)
        contacts = _parse_contacts(body.get("contacts"))
        duration = body.get("duration_seconds")
        duration = float(duration) if duration is not None else None
    except BadRequest as exc:
        return _error(400, str(exc))
    except (TypeError, ValueError):
        return _error(400, "duration_seconds must be a number")
    if duration is not None and duration <= 0:
        return _error(400, "duration_seconds must be positive")

    session.start_continuous_sharing(contacts or None, duration)
    return JSONResponse(content={"success": True, "sharing": session.sharing.to_dict()})


@router.delete("/sessions/{session_id}/sharing")
async def stop_sharing(session_id: str) -> JSONResponse:
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    await session.stop_continuous_sharing()
    return JSONResponse(content={"success": True, "sharing": session.sharing.to_dict()})


@router.post("/sessions/{session_id}/stop")
async def stop_emergency(session_id: str) -> JSONResponse:
    """End the emergency session. Calling it again is harmless."""
    session = _find_session(session_id)
    if session is None:
        return _error(404, "unknown session")
    stopped = await session.stop_emergency()
    return JSONResponse(content={"success": True, "stopped": stopped})


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> JSONResponse:
    """End the session and forget it: stops the emergency and any sharing."""
    from safeguard.main import get_registry

    if not await get_registry().remove(session_id):
        return _error(404, "unknown session")
    return JSONResponse(content={"success": True, "session_id": session_id})


@router.get("/sessions/{session_id}/events")
async def session_events(
    session_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
) -> JSONResponse:
    """Most recent entries of the session log, newest first."""
    from safeguard.main import get_recorder

    if _find_session(session_id) is None:
        return _error(404, "unknown session")
    events = await asyncio.to_thread(get_recorder().storage.read_session, session_id)
    events.reverse()
    return JSONResponse(content={"events": events[:limit], "total": len(events)})


@router.get("/area")
async def analyze_area(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
) -> JSONResponse:
    """Crime-profile analysis and safety advice for a location."""
    from safeguard.main import get_lookup

    analysis = get_lookup().analyze_area(lat, lng)
    return JSONResponse(content={"success": True, "analysis": analysis.to_dict()})

