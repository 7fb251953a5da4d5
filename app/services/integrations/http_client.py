"""
HTTP client helper with standardized timeout configuration.

Every outbound provider call gets explicit timeouts so one stalled call can not hold
a webhook batch or broadcast open indefinitely.
"""

import httpx


def get_httpx_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        10.0,  # Default timeout for all operations
        connect=5.0,
        read=10.0,
        write=5.0,
        pool=5.0,
    )


def create_httpx_client(
    base_url: str = "",
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Create a long-lived httpx.AsyncClient for one provider.

    Args:
        base_url: Provider API base URL
        headers: Default headers (auth, content type)
        transport: Optional transport override (tests use httpx.MockTransport)
    """
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=get_httpx_timeout(),
        transport=transport,
    )
