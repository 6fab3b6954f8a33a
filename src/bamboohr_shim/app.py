"""Typer application and console entry point for bamboohr-shim.

A small diagnostic CLI over :class:`~bamboohr_shim.client.BambooHRClient`
for checking credentials and endpoints by hand without starting the agent
tool server::

    bamboohr-shim request GET /employees/directory
    bamboohr-shim request GET /employees/42 --param fields=firstName,lastName
    bamboohr-shim report /reports/custom --format csv
    bamboohr-shim upload-file 42 ./contract.pdf --category 17
    bamboohr-shim upload-photo 42 ./portrait.jpg

Settings come from :func:`~bamboohr_shim.config.resolve_settings`. Errors
are printed to stderr and the process exits with the error's exit code.
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Coroutine, List, Optional

import typer

from bamboohr_shim import __version__
from bamboohr_shim.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE


app = typer.Typer(
    name="bamboohr-shim",
    help="Call the BambooHR API through the bamboohr-shim client.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"bamboohr-shim {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Project config file (default: ./bamboohr.json)."
    ),
) -> None:
    """Initialise the global output manager and store shared options on ``ctx.obj``."""
    from bamboohr_shim.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_client(ctx: typer.Context):
    from bamboohr_shim.client import BambooHRClient
    from bamboohr_shim.config import resolve_settings

    config_path = (ctx.obj or {}).get("config")
    return BambooHRClient(resolve_settings(config_path=config_path))


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run *coro*, turning client errors into a clean exit."""
    from bamboohr_shim.exceptions import BambooHRError
    from bamboohr_shim.output import error

    try:
        return asyncio.run(coro)
    except BambooHRError as exc:
        error(str(exc))
        if exc.detail and exc.detail != str(exc):
            error(f"Upstream: {exc.detail}")
        raise typer.Exit(exc.exit_code)


def _parse_params(values: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            from bamboohr_shim.output import error

            error(f"Invalid --param '{item}', expected key=value")
            raise typer.Exit(EXIT_INVALID_USAGE)
        params[key] = value
    return params


def _parse_body(body: Optional[str]) -> Optional[dict[str, Any]]:
    if body is None:
        return None
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        from bamboohr_shim.output import error

        error(f"--body is not valid JSON: {exc}")
        raise typer.Exit(EXIT_INVALID_USAGE)
    if not isinstance(parsed, dict):
        from bamboohr_shim.output import error

        error("--body must be a JSON object")
        raise typer.Exit(EXIT_INVALID_USAGE)
    return parsed


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("request")
def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(..., help="GET, POST, PUT or DELETE."),
    path: str = typer.Argument(..., help="API path, e.g. /employees/directory."),
    param: Optional[List[str]] = typer.Option(
        None, "--param", "-p", help="Query parameter as key=value (repeatable)."
    ),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="JSON request body."),
    max_retries: Optional[int] = typer.Option(
        None, "--max-retries", help="Rate-limit retry budget."
    ),
) -> None:
    """Send one API request and print the result."""
    from bamboohr_shim.output import get_output

    params = _parse_params(param or [])
    json_body = _parse_body(body)

    async def _call() -> Any:
        async with _make_client(ctx) as client:
            return await client.request(
                method,
                path,
                body=json_body,
                params=params or None,
                max_retries=max_retries,
            )

    result = _run(_call())
    get_output().format_response(result)


@app.command("report")
def report_command(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Report path, e.g. /reports/custom."),
    format: str = typer.Option("json", "--format", "-f", help="json, xml or csv."),
) -> None:
    """Download a report."""
    from bamboohr_shim.models import ReportFormat
    from bamboohr_shim.output import error, get_output

    try:
        report_format = ReportFormat(format.lower())
    except ValueError:
        error(f"Unknown report format '{format}', expected json, xml or csv")
        raise typer.Exit(EXIT_INVALID_USAGE)

    async def _call() -> Any:
        async with _make_client(ctx) as client:
            return await client.get_report(path, report_format)

    get_output().format_response(_run(_call()))


@app.command("upload-file")
def upload_file_command(
    ctx: typer.Context,
    employee_id: str = typer.Argument(..., help="Employee ID."),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload."),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="File category ID."),
) -> None:
    """Upload a file to an employee's profile."""
    from bamboohr_shim.output import success

    data = file.read_bytes()

    async def _call() -> Any:
        async with _make_client(ctx) as client:
            return await client.upload_file(
                f"/employees/{employee_id}/files", data, file.name, category
            )

    result = _run(_call())
    success(
        f'Uploaded "{file.name}" for employee {employee_id}. '
        f"File ID: {result.id or 'unknown'}"
    )


@app.command("upload-photo")
def upload_photo_command(
    ctx: typer.Context,
    employee_id: str = typer.Argument(..., help="Employee ID."),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to upload."),
) -> None:
    """Upload an employee's profile photo."""
    from bamboohr_shim.output import success

    data = file.read_bytes()

    async def _call() -> None:
        async with _make_client(ctx) as client:
            await client.upload_photo(f"/employees/{employee_id}/photo", data)

    _run(_call())
    success(f"Uploaded profile photo for employee {employee_id}")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``bamboohr-shim`` console script.

    Errors from the client are handled per command in :func:`_run`.
    Configuration errors raised while building the client surface here
    through the same :class:`~bamboohr_shim.exceptions.BambooHRError`
    path; anything else is reported as an unexpected error.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from bamboohr_shim.exceptions import BambooHRError
        from bamboohr_shim.output import error

        if isinstance(exc, BambooHRError):
            error(str(exc))
            sys.exit(exc.exit_code)
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
