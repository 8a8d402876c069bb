"""
SimPatient CLI.

- start:  run the voice API server
- health: query a running server
- doctor: check configuration and the case database
"""

import typer

from simpatient.cli._http import _http_get  # noqa: F401 (re-exported for test patching)
from simpatient.cli.main import configure_logging, register_commands

app = typer.Typer(help="SimPatient CLI - virtual patient voice server")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    SimPatient CLI - virtual patient voice server.
    """
    configure_logging(verbose)


register_commands(app)

if __name__ == "__main__":
    app()
