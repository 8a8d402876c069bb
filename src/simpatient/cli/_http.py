"""
Shared HTTP helpers for CLI commands that talk to the running server.
"""

import os

import httpx
import typer


def get_server_url() -> str:
    """Get the server URL from environment or default."""
    explicit = os.getenv("SIMPATIENT_SERVER_URL")
    if explicit:
        return explicit.rstrip("/")

    port = os.getenv("SIMPATIENT_PORT") or os.getenv("PORT") or "8001"
    host = os.getenv("SIMPATIENT_HOST", "localhost")
    if host == "0.0.0.0":
        host = "localhost"
    return f"http://{host}:{port}"


def _http_get(path: str) -> dict:
    """Make a GET request to the running server."""
    url = f"{get_server_url()}{path}"
    try:
        resp = httpx.get(url, timeout=10.0)
        resp.raise_for_status()
        return resp.json()
    except httpx.ConnectError:
        typer.echo("❌ Cannot connect to SimPatient server. Is it running?")
        raise typer.Exit(code=1)
    except httpx.HTTPStatusError as e:
        try:
            detail = e.response.json().get("message", str(e))
        except Exception:
            detail = str(e)
        typer.echo(f"❌ Server error ({e.response.status_code}): {detail}")
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        typer.echo(f"❌ Error: {e}")
        raise typer.Exit(code=1)
