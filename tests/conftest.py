"""Shared test fixtures for bamboohr-shim.

Provides credentials and settings fixtures, a factory for clients wired to
an :class:`httpx.MockTransport`, config isolation, and output reset. These
fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from bamboohr_shim.client import BambooHRClient
from bamboohr_shim.models import ClientSettings, Credentials, RequestConfig
from bamboohr_shim.output import OutputManager, reset_output, set_output



# ---------------------------------------------------------------------------
# Output state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a quiet, colourless output manager and reset it afterwards.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, which go stale once CliRunner or capsys swap them.
    """
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Settings fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key="test-key", subdomain="acme")


@pytest.fixture
def settings(credentials: Credentials) -> ClientSettings:
    """Settings with the default retry budget and a fixed zero jitter."""
    return ClientSettings(
        credentials=credentials,
        request=RequestConfig(timeout=5, max_retries=3, backoff_jitter=0.0),
    )


@pytest.fixture
def make_client(settings: ClientSettings) -> Callable[..., BambooHRClient]:
    """Return a factory building a client whose transport calls *handler*.

    Example::

        client = make_client(lambda request: httpx.Response(200, json={}))
    """

    def _factory(handler, **overrides) -> BambooHRClient:
        client_settings = settings.model_copy(update=overrides) if overrides else settings
        return BambooHRClient(client_settings, transport=httpx.MockTransport(handler))

    return _factory


# ---------------------------------------------------------------------------
# Config isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Clear BAMBOOHR_* environment variables and chdir into tmp_path.

    Returns:
        The tmp_path root directory for project config files.
    """
    for var in [
        "BAMBOOHR_API_KEY",
        "BAMBOOHR_COMPANY_DOMAIN",
        "BAMBOOHR_BASE_URL",
        "BAMBOOHR_TIMEOUT",
        "BAMBOOHR_MAX_RETRIES",
        "BAMBOOHR_CACHE_TTL",
        "BAMBOOHR_CONFIG",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
