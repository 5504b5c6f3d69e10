"""Shared requests session factory."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def create_http_session(retries: int = 0, pool_size: int = 10) -> requests.Session:
    """
    Create a requests session with a connection pool sized for concurrent lookups.

    The engine does not retry on its own; ``retries`` defaults to 0 and is only
    raised through configuration.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=retries,
        backoff_factor=2,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": "mfe-drift"})

    return session
