"""bamboohr-shim -- async API client core for an HR-platform agent tool server.

The package turns logical operations (verb + path + body/query) into
authenticated calls against the BambooHR REST API, with a short-lived GET
cache, rate-limit retry with backoff, multipart file upload and raw photo
upload. The agent tool layer builds on :class:`BambooHRClient`; the
``bamboohr-shim`` console script exposes the same client for manual use.

Modules:
    client: The asynchronous API client and its helpers.
    cache: Per-client TTL response cache.
    models: Pydantic models for credentials, settings and requests.
    config: Settings resolution from env vars and a project JSON file.
    exceptions: Error taxonomy with exit-code mapping.
    output: stdout/stderr output system with Rich support.
    app: Typer diagnostic CLI.
"""

__version__ = "0.1.0"

from bamboohr_shim.client import BambooHRClient  # noqa: E402
from bamboohr_shim.models import ClientSettings, Credentials  # noqa: E402

__all__ = ["BambooHRClient", "ClientSettings", "Credentials", "__version__"]
