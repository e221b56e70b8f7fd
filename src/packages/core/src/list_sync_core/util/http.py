"""HTTP request helper with bounded retries."""
import time
from typing import Callable

import requests
import structlog

from list_sync_core.util.errors import CollaboratorError, ErrorKind

logger = structlog.get_logger()

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


def request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    error_cls: type[CollaboratorError] = CollaboratorError,
    max_retries: int = 3,
    retry_delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> requests.Response:
    """Send a request, retrying network errors and throttled or 5xx responses.

    Returns the last response, whatever its status, once retries run out on a
    retryable status. Raises error_cls with kind ``network`` when every
    attempt failed at the transport level.
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            resp = session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            if attempt == attempts:
                raise error_cls(
                    f"{method} {url} failed after {attempts} attempts: {e}",
                    kind=ErrorKind.NETWORK,
                ) from e
            logger.warning(
                "http_retry_network_error",
                method=method,
                url=url,
                attempt=attempt,
                error=str(e),
            )
            sleep(retry_delay)
            continue

        if resp.status_code in RETRYABLE_STATUS and attempt < attempts:
            logger.warning(
                "http_retry_status",
                method=method,
                url=url,
                attempt=attempt,
                status_code=resp.status_code,
            )
            sleep(retry_delay)
            continue
        return resp
    raise error_cls(f"{method} {url} failed")
