"""
Starlette-based web server for the SimPatient voice API.

This server provides a REST API with the following endpoints:
- /api/voice/init: Create a session bound to a clinical case
- /api/voice/start: Patient greeting, session becomes active
- /api/voice/process: One spoken turn (multipart audio)
- /api/voice/history: Conversation transcript
- /api/voice/stop: End a session
- /health, /ready: Liveness and readiness checks

Sessions live in memory only; the expiry sweeper runs for the lifetime of
the application.
"""

from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Mount, Route

from simpatient.config import CONFIG, Settings
from simpatient.database import CaseDatabase
from simpatient.llm import PatientChat
from simpatient.logger import get_logger, setup_logging
from simpatient.middleware import RequestLoggingMiddleware
from simpatient.routes.health_routes import health_check, readiness_check
from simpatient.routes.voice_routes import (
    get_history,
    init_session,
    process_audio,
    start_session,
    stop_session,
)
from simpatient.session import ExpirySweeper, SessionLifecycle, SessionPolicy, SessionStore
from simpatient.voice import Transcriber, build_synthesizer

logger = get_logger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
CORS_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"]


def build_lifecycle(settings: Settings) -> SessionLifecycle:
    """Wire the session core to the real collaborators."""
    cases = CaseDatabase(
        settings.database_url,
        pool_size=settings.db_pool_max,
        pool_recycle=settings.db_pool_recycle,
    )
    transcriber = Transcriber(
        model=settings.stt_model,
        language=settings.stt_language,
        api_key=settings.openai_api_key,
        timeout=settings.upstream_timeout_seconds,
    )
    chat = PatientChat(
        model=settings.chat_model,
        temperature=settings.chat_temperature,
        max_tokens=settings.chat_max_tokens,
        api_key=settings.openai_api_key,
        timeout=settings.upstream_timeout_seconds,
    )
    return SessionLifecycle(
        store=SessionStore(),
        cases=cases,
        transcriber=transcriber,
        chat=chat,
        speech=build_synthesizer(settings),
        policy=SessionPolicy.from_settings(settings),
    )


async def _close_collaborators(lifecycle: SessionLifecycle) -> None:
    for collaborator in (lifecycle.speech, lifecycle.transcriber, lifecycle.chat):
        aclose = getattr(collaborator, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception as e:
            logger.error(f"Error closing {type(collaborator).__name__}: {e}")

    dispose = getattr(lifecycle.cases, "dispose", None)
    if dispose is not None:
        dispose()


def create_app(
    settings: Optional[Settings] = None,
    lifecycle: Optional[SessionLifecycle] = None,
) -> Starlette:
    """
    Build the application.

    Args:
        settings: Configuration; defaults to the shared CONFIG.
        lifecycle: Pre-wired session lifecycle (tests inject fakes). When
            omitted, real collaborators are built and API credentials are
            required.
    """
    settings = settings or CONFIG
    settings.validate()

    if lifecycle is None:
        settings.require_credentials()
        lifecycle = build_lifecycle(settings)

    sweeper = ExpirySweeper(
        lifecycle.store,
        idle_timeout_seconds=lifecycle.policy.idle_timeout_seconds,
        interval_seconds=lifecycle.policy.sweep_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Application startup - starting session sweeper")
        await sweeper.start()
        try:
            yield
        finally:
            logger.info("Application shutdown - cleaning up services")
            await sweeper.stop()
            await _close_collaborators(lifecycle)

    voice_routes = [
        Route("/init", init_session, methods=["POST"]),
        Route("/start", start_session, methods=["POST"]),
        Route("/process", process_audio, methods=["POST"]),
        Route("/history", get_history, methods=["POST"]),
        Route("/stop", stop_session, methods=["POST"]),
    ]

    app = Starlette(
        routes=[
            Route("/health", health_check, methods=["GET"]),
            Route("/ready", readiness_check, methods=["GET"]),
            Mount("/api/voice", routes=voice_routes),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_origins,
                allow_credentials=True,
                allow_methods=CORS_METHODS,
                allow_headers=CORS_HEADERS,
            ),
            Middleware(RequestLoggingMiddleware),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.lifecycle = lifecycle
    app.state.sweeper = sweeper
    app.state.cases = lifecycle.cases
    return app


def main(settings: Optional[Settings] = None, reload: bool = False) -> None:
    """Run the server with uvicorn."""
    import uvicorn

    settings = settings or CONFIG
    setup_logging(level=settings.log_level, log_file=settings.log_file)

    logger.info(f"Voice API Server starting on http://{settings.host}:{settings.port}")
    for path in ("init", "start", "process", "stop", "history"):
        logger.info(f"   POST /api/voice/{path}")
    logger.info("   GET  /health")

    uvicorn.run(
        "simpatient.server:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=reload,
    )


if __name__ == "__main__":
    main()
