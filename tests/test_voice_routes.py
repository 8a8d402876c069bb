"""
Tests for the voice API routes and the health endpoints.

The app is built with fake collaborators, so no network or database is
touched.
"""

import base64
import io
from unittest.mock import patch

import pytest
from starlette.datastructures import UploadFile
from starlette.testclient import TestClient

from conftest import CASE_ID, FakeChat
from simpatient.config import Settings
from simpatient.errors import ConfigError, PayloadTooLarge
from simpatient.prompts import PATIENT_GREETING
from simpatient.routes.voice_routes import _read_audio
from simpatient.server import create_app
from simpatient.session import SessionLifecycle, SessionPolicy

AUDIO = b"\x1aE\xdf\xa3webm-bytes"


@pytest.fixture
def settings():
    return Settings(cors_origins=["http://localhost:3000"])


@pytest.fixture
def client(settings, lifecycle):
    app = create_app(settings, lifecycle=lifecycle)
    with TestClient(app) as client:
        yield client


def _init(client, gender="Male", osce_id=CASE_ID):
    resp = client.post("/api/voice/init", json={"gender": gender, "osce_id": osce_id})
    assert resp.status_code == 200, resp.text
    return resp.json()["session_id"]


def _process(client, session_id, audio=AUDIO):
    return client.post(
        "/api/voice/process",
        data={"session_id": session_id},
        files={"audio": ("speech.webm", audio, "audio/webm")},
    )


class TestInitRoute:
    def test_init_returns_session_id(self, client):
        resp = client.post(
            "/api/voice/init", json={"gender": "Female", "osce_id": CASE_ID}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["session_id"]
        assert data["message"] == "Session initialized successfully"

    def test_init_accepts_form_body(self, client):
        resp = client.post("/api/voice/init", data={"gender": "Male", "osce_id": CASE_ID})
        assert resp.status_code == 200
        assert resp.json()["session_id"]

    def test_init_missing_parameters(self, client):
        resp = client.post("/api/voice/init", json={"gender": "Male"})
        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "validation_error",
            "message": "Missing required parameters: gender and osce_id",
        }

    def test_init_invalid_gender(self, client):
        resp = client.post("/api/voice/init", json={"gender": "x", "osce_id": CASE_ID})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_init_unknown_case(self, client):
        resp = client.post("/api/voice/init", json={"gender": "Male", "osce_id": "nope"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "case_not_found"
        assert resp.json()["message"] == "OSCE case not found"

    def test_init_invalid_json(self, client):
        resp = client.post(
            "/api/voice/init",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid JSON body"

    def test_init_rejects_non_object_body(self, client):
        resp = client.post("/api/voice/init", json=["Male", CASE_ID])
        assert resp.status_code == 400


class TestConversationRoutes:
    def test_start_returns_greeting_audio(self, client):
        session_id = _init(client)

        resp = client.post("/api/voice/start", json={"session_id": session_id})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["text"] == PATIENT_GREETING
        assert base64.b64decode(data["audio_base64"]) == f"audio:{PATIENT_GREETING}".encode()

    def test_start_twice(self, client):
        session_id = _init(client)
        client.post("/api/voice/start", json={"session_id": session_id})

        resp = client.post("/api/voice/start", json={"session_id": session_id})

        assert resp.status_code == 400
        assert resp.json()["error"] == "session_already_active"

    def test_start_missing_session_id(self, client):
        resp = client.post("/api/voice/start", json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing required parameter: session_id"

    def test_start_unknown_session(self, client):
        resp = client.post("/api/voice/start", json={"session_id": "missing"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "session_not_found"

    def test_process_turn(self, client, transcriber):
        session_id = _init(client)
        client.post("/api/voice/start", json={"session_id": session_id})

        resp = _process(client, session_id)

        assert resp.status_code == 200
        data = resp.json()
        assert data["transcription"] == "What brings you in?"
        assert data["response_text"] == "Chest pain."
        assert base64.b64decode(data["audio_base64"]) == b"audio:Chest pain."
        assert transcriber.calls == [AUDIO]

    def test_process_before_start(self, client, transcriber):
        session_id = _init(client)

        resp = _process(client, session_id)

        assert resp.status_code == 400
        assert resp.json()["error"] == "session_not_active"
        assert resp.json()["message"] == "Session not active. Call /start first."
        assert transcriber.calls == []

    def test_process_without_audio(self, client):
        session_id = _init(client)
        client.post("/api/voice/start", json={"session_id": session_id})

        resp = client.post("/api/voice/process", data={"session_id": session_id})

        assert resp.status_code == 400
        assert resp.json()["message"] == "No audio file provided"

    def test_process_without_session_id(self, client):
        resp = client.post(
            "/api/voice/process",
            files={"audio": ("speech.webm", AUDIO, "audio/webm")},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing required parameter: session_id"

    def test_process_upstream_failure(self, settings, store, cases, transcriber, speech):
        chat = FakeChat(error=RuntimeError("model overloaded"))
        lifecycle = SessionLifecycle(store, cases, transcriber, chat, speech)
        with TestClient(create_app(settings, lifecycle=lifecycle)) as client:
            session_id = _init(client)
            client.post("/api/voice/start", json={"session_id": session_id})

            resp = _process(client, session_id)

            assert resp.status_code == 502
            assert resp.json()["error"] == "completion_failed"
            history = client.post(
                "/api/voice/history", json={"session_id": session_id}
            ).json()["history"]
            assert len(history) == 1

    def test_process_oversized_audio(self, settings, store, cases, transcriber, chat, speech):
        policy = SessionPolicy(max_audio_bytes=4)
        lifecycle = SessionLifecycle(store, cases, transcriber, chat, speech, policy)
        with TestClient(create_app(settings, lifecycle=lifecycle)) as client:
            session_id = _init(client)
            client.post("/api/voice/start", json={"session_id": session_id})

            resp = _process(client, session_id)

            assert resp.status_code == 413
            assert resp.json()["error"] == "payload_too_large"

    def test_oversized_upload_is_not_buffered(
        self, settings, store, cases, transcriber, chat, speech
    ):
        policy = SessionPolicy(max_audio_bytes=1024)
        lifecycle = SessionLifecycle(store, cases, transcriber, chat, speech, policy)
        original_read = UploadFile.read
        reads = []

        async def recording_read(self, size=-1):
            data = await original_read(self, size)
            reads.append(len(data))
            return data

        with patch.object(UploadFile, "read", recording_read):
            with TestClient(create_app(settings, lifecycle=lifecycle)) as client:
                session_id = _init(client)
                client.post("/api/voice/start", json={"session_id": session_id})

                resp = _process(client, session_id, audio=b"\x00" * 5_000_000)

        assert resp.status_code == 413
        assert all(n <= policy.max_audio_bytes + 1 for n in reads)
        assert transcriber.calls == []

    def test_unexpected_error_is_internal_error(self, settings, lifecycle):
        with patch.object(lifecycle, "initialize", side_effect=RuntimeError("bug")):
            with TestClient(create_app(settings, lifecycle=lifecycle)) as client:
                resp = client.post(
                    "/api/voice/init", json={"gender": "Male", "osce_id": CASE_ID}
                )

        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "internal_error",
            "message": "Internal server error",
        }

    def test_history_and_stop(self, client):
        session_id = _init(client)
        client.post("/api/voice/start", json={"session_id": session_id})
        _process(client, session_id)

        resp = client.post("/api/voice/history", json={"session_id": session_id})

        assert resp.status_code == 200
        assert resp.json()["history"] == [
            {"role": "assistant", "content": PATIENT_GREETING},
            {"role": "user", "content": "What brings you in?"},
            {"role": "assistant", "content": "Chest pain."},
        ]

        resp = client.post("/api/voice/stop", json={"session_id": session_id})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        for path in ("start", "history", "stop"):
            resp = client.post(f"/api/voice/{path}", json={"session_id": session_id})
            assert resp.status_code == 404, path
        assert _process(client, session_id).status_code == 404

    def test_non_string_session_id(self, client):
        resp = client.post("/api/voice/history", json={"session_id": ["a"]})
        assert resp.status_code == 400


class TestHealthRoutes:
    def test_health(self, client):
        _init(client)

        resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["active_sessions"] == 1
        assert data["sweeper"]["running"] is True
        assert "uptime_seconds" in data

    def test_ready_without_database(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"] == {"database": "not configured", "sweeper": "ok"}

    def test_response_time_header(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Response-Time"].endswith("ms")

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api/voice/init",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestCreateApp:
    def test_requires_credentials_without_lifecycle(self):
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            create_app(Settings())

    def test_rejects_invalid_settings(self, lifecycle):
        bad = Settings(session_idle_timeout_seconds=60, session_sweep_interval_seconds=120)
        with pytest.raises(ConfigError):
            create_app(bad, lifecycle=lifecycle)


class TestReadAudio:
    @pytest.mark.asyncio
    async def test_reads_upload_within_limit(self):
        upload = UploadFile(io.BytesIO(b"abcd"), size=4)
        assert await _read_audio(upload, SessionPolicy(max_audio_bytes=4)) == b"abcd"

    @pytest.mark.asyncio
    async def test_declared_size_rejected_before_reading(self):
        upload = UploadFile(io.BytesIO(b"x" * 10), size=10)
        with pytest.raises(PayloadTooLarge):
            await _read_audio(upload, SessionPolicy(max_audio_bytes=4))
        assert upload.file.tell() == 0

    @pytest.mark.asyncio
    async def test_unknown_size_reads_one_byte_past_limit(self):
        buffer = io.BytesIO(b"x" * 10)
        upload = UploadFile(buffer)
        with pytest.raises(PayloadTooLarge):
            await _read_audio(upload, SessionPolicy(max_audio_bytes=4))
        assert buffer.tell() == 5
