"""Translate ``requests`` failures into the chat error taxonomy."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import requests

from ..errors import AuthError, NetworkError, ProviderError, RateLimitError


def raise_for_status(response: requests.Response, provider: str) -> None:
    status = response.status_code
    if status in (401, 403):
        raise AuthError(f"{provider} rejected the API key.")
    if status == 429:
        raise RateLimitError()
    if status >= 400:
        raise ProviderError(f"API error: HTTP {status}")


@contextmanager
def translate_request_errors(provider: str) -> Iterator[None]:
    try:
        yield
    except (requests.ConnectionError, requests.Timeout) as exc:
        raise NetworkError(f"Network error: could not reach {provider}.") from exc
    except requests.RequestException as exc:
        raise NetworkError(f"Network error: {exc}") from exc
