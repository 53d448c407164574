"""
HTTP delivery of queued operations over a requests.Session.

requests is blocking, so each call runs in a worker thread and the event loop
only suspends while the request is in flight.
"""

import asyncio
import logging

import requests

from .operation import encode_body

logger = logging.getLogger(__name__)


class NetworkError(OSError):
    """No response was received (DNS failure, refused connection, timeout)."""


class RequestsTransport:
    """
    Send requests relative to a base URL.

    Args:
        base_url: Prefix for relative operation URLs (e.g. 'https://pool.example.com')
        session: Optional requests.Session or compatible object with a
                 .request(method, url, data=..., headers=..., timeout=...) method.
                 A shared session keeps cookies, so authenticated calls carry
                 the same credentials as the rest of the app.
        timeout: Per-request timeout in seconds
    """

    def __init__(self, base_url='', session=None, timeout=10.0):
        self.base_url = base_url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def url_for(self, url):
        if url.startswith(('http://', 'https://')) or not self.base_url:
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def _request(self, method, url, data, headers, params):
        try:
            return self.session.request(
                method,
                self.url_for(url),
                data=data,
                headers=headers,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

    async def send(self, method, url, body=None, headers=None, params=None):
        """Issue one request. Returns the response; raises NetworkError when none arrives."""
        data = encode_body(body)
        logger.debug("Sending %s %s", method, url)
        return await asyncio.to_thread(self._request, method, url, data, headers, params)

    def close(self):
        self.session.close()
