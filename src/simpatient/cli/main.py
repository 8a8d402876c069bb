"""
Top-level CLI commands: start, health, doctor.
"""

import os

import typer

from simpatient.cli._http import _http_get


def configure_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    from simpatient.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "WARNING")


def register_commands(app: typer.Typer):
    """Register top-level commands onto the app."""

    @app.command()
    def start(
        host: str = typer.Option(None, "--host", help="Bind address"),
        port: int = typer.Option(None, "--port", "-p", help="Bind port"),
        reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
        debug: bool = typer.Option(False, "--debug", help="Log at DEBUG level"),
    ):
        """Start the voice API server."""
        from simpatient.config import CONFIG
        from simpatient.errors import ConfigError
        from simpatient.server import main as run_server

        if host:
            CONFIG.host = host
        if port:
            CONFIG.port = port
        if debug:
            CONFIG.log_level = "DEBUG"

        try:
            CONFIG.validate()
            CONFIG.require_credentials()
        except ConfigError as e:
            typer.echo(f"❌ {e}")
            raise typer.Exit(code=1)

        # uvicorn builds the app in its own factory call; pass overrides on
        os.environ["SIMPATIENT_HOST"] = CONFIG.host
        os.environ["SIMPATIENT_PORT"] = str(CONFIG.port)
        os.environ["LOG_LEVEL"] = CONFIG.log_level

        typer.echo(f"🚀 Starting SimPatient on {CONFIG.host}:{CONFIG.port}...")
        run_server(CONFIG, reload=reload)

    @app.command()
    def health():
        """Query the running server's health endpoint."""
        data = _http_get("/health")
        typer.echo(f"Status:          {data.get('status', 'unknown')}")
        typer.echo(f"Active sessions: {data.get('active_sessions', 0)}")
        uptime = data.get("uptime_seconds")
        if uptime is not None:
            typer.echo(f"Uptime:          {uptime}s")
        sweeper = data.get("sweeper") or {}
        if sweeper:
            typer.echo(
                f"Sweeper:         {'running' if sweeper.get('running') else 'stopped'}"
                f" (evicted {sweeper.get('total_evicted', 0)} so far)"
            )

    @app.command()
    def doctor():
        """Check configuration and the case database."""
        from simpatient.config import CONFIG
        from simpatient.errors import ConfigError

        problems = 0

        try:
            CONFIG.validate()
            typer.echo("✅ Session timing and provider settings are valid")
        except ConfigError as e:
            typer.echo(f"❌ {e}")
            problems += 1

        missing = CONFIG.missing_credentials()
        if missing:
            typer.echo(f"❌ Missing API credentials: {', '.join(missing)}")
            problems += 1
        else:
            typer.echo("✅ API credentials present")

        try:
            from simpatient.database import CaseDatabase

            db = CaseDatabase(CONFIG.database_url, create_tables=False)
            db.ping()
            db.dispose()
            typer.echo("✅ Case database reachable")
        except Exception as e:
            typer.echo(f"❌ Case database unreachable: {e}")
            problems += 1

        if problems:
            raise typer.Exit(code=1)
        typer.echo("All checks passed.")
