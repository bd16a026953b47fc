"""
Aiohttp based HTTP transport for the ComfyUI client.
Maps transport failures onto the error types in errors.py.
"""

import asyncio
import json
import ssl
from typing import Optional

import aiohttp
import certifi

from .errors import ArtifactNotFoundError, BackendUnavailableError, NetworkError


def _error_message(data: dict) -> str:
    """Extract a readable message from a ComfyUI error body."""
    error = data.get("error", "Network error")
    if isinstance(error, dict):
        message = error.get("message") or error.get("type") or "Network error"
        details = error.get("details")
        if details:
            message = f"{message}: {details}"
    else:
        message = str(error)

    node_errors = data.get("node_errors")
    if node_errors:
        message = f"{message} {json.dumps(node_errors)}"
    return message


class AiohttpRequestManager:
    """
    Thin async HTTP client around a lazily created aiohttp session.
    JSON responses are parsed, everything else is returned as bytes.
    """

    def __init__(self, bearer: Optional[str] = None):
        self._session: aiohttp.ClientSession | None = None
        self._bearer_token: str | None = bearer

    async def ensure_session(self):
        """Lazy session creation with proper SSL context."""
        if self._session is None or self._session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            self._session = aiohttp.ClientSession(connector=connector)

    def set_auth(self, bearer: str):
        """Set default bearer token for all requests."""
        self._bearer_token = bearer

    def _get_headers(self) -> dict:
        headers = {}
        if self._bearer_token:
            headers["Authorization"] = f"Bearer {self._bearer_token}"
        return headers

    async def get(
        self,
        url: str,
        timeout: float | None = None,
        params: dict | None = None,
    ) -> dict | bytes:
        """
        GET request, auto-parses JSON responses.

        Args:
            url: Request URL
            timeout: Optional timeout in seconds
            params: Optional query parameters

        Returns:
            Parsed JSON dict or raw bytes
        """
        await self.ensure_session()
        assert self._session is not None

        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

        try:
            async with self._session.get(
                url, headers=self._get_headers(), params=params, timeout=client_timeout
            ) as response:
                return await self._handle_response(response, url)
        except aiohttp.ClientConnectionError as e:
            raise BackendUnavailableError(0, str(e) or type(e).__name__, url)
        except asyncio.TimeoutError:
            raise BackendUnavailableError(
                0, "Connection timed out, the server took too long to respond", url
            )
        except aiohttp.ClientError as e:
            raise NetworkError(0, str(e), url)

    async def post(
        self,
        url: str,
        data: dict,
        timeout: float | None = None,
    ) -> dict | bytes:
        """
        POST JSON request.

        Args:
            url: Request URL
            data: JSON data to send
            timeout: Optional timeout in seconds

        Returns:
            Parsed JSON dict or raw bytes
        """
        await self.ensure_session()
        assert self._session is not None

        headers = self._get_headers()
        headers["Content-Type"] = "application/json"
        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

        try:
            async with self._session.post(
                url, json=data, headers=headers, timeout=client_timeout
            ) as response:
                return await self._handle_response(response, url)
        except aiohttp.ClientConnectionError as e:
            raise BackendUnavailableError(0, str(e) or type(e).__name__, url)
        except asyncio.TimeoutError:
            raise BackendUnavailableError(
                0, "Connection timed out, the server took too long to respond", url
            )
        except aiohttp.ClientError as e:
            raise NetworkError(0, str(e), url)

    async def download(
        self,
        url: str,
        timeout: float | None = None,
        params: dict | None = None,
    ) -> bytes:
        """
        Download file.

        Args:
            url: Request URL
            timeout: Optional timeout in seconds
            params: Optional query parameters

        Returns:
            Downloaded bytes

        Raises:
            ArtifactNotFoundError: the server answered 404
        """
        await self.ensure_session()
        assert self._session is not None

        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

        try:
            async with self._session.get(
                url, headers=self._get_headers(), params=params, timeout=client_timeout
            ) as response:
                if response.status == 404:
                    raise ArtifactNotFoundError(
                        404, f"Not found: {url}", url, status=404
                    )
                if response.status >= 400:
                    text = await response.text()
                    raise NetworkError(
                        response.status,
                        f"Download failed: {text}",
                        url,
                        status=response.status,
                    )
                return await response.read()
        except aiohttp.ClientConnectionError as e:
            raise BackendUnavailableError(0, str(e) or type(e).__name__, url)
        except asyncio.TimeoutError:
            raise BackendUnavailableError(
                0, "Connection timed out, the server took too long to respond", url
            )
        except aiohttp.ClientError as e:
            raise NetworkError(0, str(e), url)

    async def _handle_response(
        self, response: aiohttp.ClientResponse, url: str
    ) -> dict | bytes:
        """Handle response, parsing JSON if appropriate."""
        if response.status >= 400:
            try:
                data = await response.json(content_type=None)
            except (json.JSONDecodeError, aiohttp.ContentTypeError):
                data = None
            if isinstance(data, dict):
                raise NetworkError(
                    response.status,
                    f"{_error_message(data)} ({response.reason})",
                    url,
                    status=response.status,
                    data=data,
                )
            text = await response.text()
            raise NetworkError(
                response.status,
                f"{text} ({response.reason})",
                url,
                status=response.status,
            )

        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                return await response.json()
            except (json.JSONDecodeError, UnicodeDecodeError, aiohttp.ContentTypeError) as e:
                raise NetworkError(
                    response.status,
                    f"Invalid JSON response: {e}",
                    url,
                    status=response.status,
                )
        else:
            return await response.read()

    async def close(self):
        """Close the session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
