"""HTTP client package for bamboohr-shim.

Provides :class:`BambooHRClient`, an asynchronous client backed by
:class:`httpx.AsyncClient` with Basic-Auth injection, a per-instance GET
cache, rate-limit retry with backoff, multipart file upload, raw photo
upload and report downloads.

Supporting modules:
    :mod:`~bamboohr_shim.client.retry` -- retry predicate, backoff and
    attempt outcome types.
    :mod:`~bamboohr_shim.client.response` -- body extraction and error
    records.
    :mod:`~bamboohr_shim.client.multipart` -- form-data encoder.

Example::

    from bamboohr_shim.client import BambooHRClient

    async with BambooHRClient(settings) as client:
        employee = await client.get("/employees/42", params={"fields": "firstName"})
"""

from bamboohr_shim.client.async_client import BambooHRClient

__all__ = ["BambooHRClient"]
