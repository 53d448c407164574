"""Queued operation records: one deferred mutating HTTP call each."""

import json
import random
import string
import time

MUTATING_METHODS = ('POST', 'PUT', 'DELETE')
DEFAULT_HEADERS = {'Content-Type': 'application/json'}

_ID_ALPHABET = string.digits + string.ascii_lowercase


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_id(timestamp: int = None) -> str:
    """Build an operation id: epoch milliseconds plus a short random suffix."""
    ts = now_ms() if timestamp is None else timestamp
    suffix = ''.join(random.choices(_ID_ALPHABET, k=6))
    return f"{ts}_{suffix}"


def create_operation(method: str, url: str, body=None, headers: dict = None, clock=None) -> dict:
    """Create a queued operation. Returns { id, method, url, body, headers, enqueued_at }."""
    verb = (method or 'POST').upper()
    if verb not in MUTATING_METHODS:
        raise ValueError(f"poolsync: method must be one of {', '.join(MUTATING_METHODS)}, got '{method}'")
    if not url or not isinstance(url, str):
        raise ValueError("poolsync: url is required and must be a string")

    enqueued_at = (clock or now_ms)()
    return {
        'id': make_id(enqueued_at),
        'method': verb,
        'url': url,
        'body': body,
        'headers': dict(headers) if headers is not None else dict(DEFAULT_HEADERS),
        'enqueued_at': enqueued_at,
    }


def encode_body(body):
    """Serialize a body at send time. Strings pass through untouched."""
    if body is None:
        return None
    if isinstance(body, (str, bytes)):
        return body
    return json.dumps(body)
