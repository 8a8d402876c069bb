"""
Pydantic models for the voice REST API.

Covers request bodies (validated before any session lookup) and the
response payloads returned by the routes.
"""

from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ─── Requests ────────────────────────────────────────────────────────


class InitRequest(BaseModel):
    """POST /init body. ``osce_id`` is also accepted as ``case_reference``."""

    model_config = ConfigDict(populate_by_name=True)

    gender: Optional[str] = None
    case_reference: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("osce_id", "case_reference", "caseReference"),
    )


class SessionRequest(BaseModel):
    """Body of every endpoint that addresses an existing session."""

    session_id: Optional[str] = None


# ─── Responses ───────────────────────────────────────────────────────


class InitResponse(BaseModel):
    success: bool = True
    session_id: str
    message: str = "Session initialized successfully"


class StartResponse(BaseModel):
    success: bool = True
    audio_base64: str
    text: str
    message: str = "Session started successfully"


class ProcessResponse(BaseModel):
    success: bool = True
    transcription: str
    response_text: str
    audio_base64: str


class HistoryEntry(BaseModel):
    role: str
    content: str


class HistoryResponse(BaseModel):
    success: bool = True
    history: list[HistoryEntry] = Field(default_factory=list)


class StopResponse(BaseModel):
    success: bool = True
    message: str = "Session stopped successfully"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
