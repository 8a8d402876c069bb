"""
Voice conversation API routes.

This module handles the conversation endpoints:
- /init: bind a new session to a clinical case
- /start: patient greeting, session becomes active
- /process: one spoken turn (multipart audio upload)
- /history: visible transcript
- /stop: end the session

Every failure is returned as ``{"success": false, "error": code, "message": ...}``
with the status code of its error kind.
"""

import base64
import functools
import json
from typing import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile
from starlette.requests import Request
from starlette.responses import JSONResponse

from simpatient.api_models import (
    ErrorResponse,
    HistoryEntry,
    HistoryResponse,
    InitRequest,
    InitResponse,
    ProcessResponse,
    SessionRequest,
    StartResponse,
    StopResponse,
)
from simpatient.errors import SimPatientError, ValidationError
from simpatient.logger import get_logger
from simpatient.session.lifecycle import SessionLifecycle, SessionPolicy

logger = get_logger(__name__)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def api_route(
    handler: Callable[[Request], Awaitable[JSONResponse]],
) -> Callable[[Request], Awaitable[JSONResponse]]:
    """Translate raised errors into JSON error responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except SimPatientError as e:
            if e.status_code >= 500:
                logger.error(f"{request.url.path} failed: {e.message}")
            else:
                logger.info(f"{request.url.path} rejected ({e.code}): {e.message}")
            return JSONResponse(e.to_dict(), status_code=e.status_code)
        except Exception as e:
            logger.exception(f"Unhandled error in {request.url.path}: {e}")
            return JSONResponse(
                ErrorResponse(
                    error="internal_error", message="Internal server error"
                ).model_dump(),
                status_code=500,
            )

    return wrapper


def _get_lifecycle(request: Request) -> SessionLifecycle:
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None:
        raise SimPatientError("Session system not initialized")
    return lifecycle


async def _read_payload(request: Request) -> dict:
    """Read a JSON or form body into a dict."""
    content_type = request.headers.get("content-type", "")
    if any(ct in content_type for ct in FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: form.get(key) for key in form.keys()}

    body = await request.body()
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


async def _read_session_request(request: Request) -> SessionRequest:
    payload = await _read_payload(request)
    try:
        return SessionRequest.model_validate(payload)
    except PydanticValidationError:
        raise ValidationError("Invalid parameter: session_id must be a string")


async def _read_audio(upload: UploadFile, policy: SessionPolicy) -> bytes:
    """Read an upload without holding more than the size limit in memory."""
    if upload.size is not None:
        policy.check_audio_size(upload.size)
    audio = await upload.read(policy.max_audio_bytes + 1)
    policy.check_audio_size(len(audio))
    return audio


def _b64(audio: bytes) -> str:
    return base64.b64encode(audio).decode("ascii")


@api_route
async def init_session(request: Request) -> JSONResponse:
    """
    POST /init: create a session for a case.

    Body: {"gender": "Male" | "Female", "osce_id": "<case reference>"}
    """
    payload = await _read_payload(request)
    try:
        body = InitRequest.model_validate(payload)
    except PydanticValidationError:
        raise ValidationError("Invalid parameters: gender and osce_id must be strings")

    session = await _get_lifecycle(request).initialize(body.gender, body.case_reference)
    return JSONResponse(InitResponse(session_id=session.id).model_dump())


@api_route
async def start_session(request: Request) -> JSONResponse:
    """POST /start: greet the doctor and activate the session."""
    body = await _read_session_request(request)
    result = await _get_lifecycle(request).start(body.session_id)
    return JSONResponse(
        StartResponse(audio_base64=_b64(result.audio), text=result.text).model_dump()
    )


@api_route
async def process_audio(request: Request) -> JSONResponse:
    """
    POST /process: transcribe a spoken turn and reply with the patient's voice.

    Multipart form fields:
        - session_id: Session identifier
        - audio: Recorded audio file (webm, wav, mp3, mp4, m4a)
    """
    payload = await _read_payload(request)

    session_id = payload.get("session_id")
    if not session_id or not isinstance(session_id, str):
        raise ValidationError("Missing required parameter: session_id")

    upload = payload.get("audio")
    if not isinstance(upload, UploadFile):
        raise ValidationError("No audio file provided")

    lifecycle = _get_lifecycle(request)
    try:
        audio = await _read_audio(upload, lifecycle.policy)
    finally:
        await upload.close()

    result = await lifecycle.process(session_id, audio)
    return JSONResponse(
        ProcessResponse(
            transcription=result.transcription,
            response_text=result.response_text,
            audio_base64=_b64(result.audio),
        ).model_dump()
    )


@api_route
async def get_history(request: Request) -> JSONResponse:
    """POST /history: transcript without the system instructions."""
    body = await _read_session_request(request)
    turns = await _get_lifecycle(request).history(body.session_id)
    resp = HistoryResponse(
        history=[HistoryEntry(role=t.role.value, content=t.content) for t in turns]
    )
    return JSONResponse(resp.model_dump())


@api_route
async def stop_session(request: Request) -> JSONResponse:
    """POST /stop: end the session."""
    body = await _read_session_request(request)
    await _get_lifecycle(request).stop(body.session_id)
    return JSONResponse(StopResponse().model_dump())
