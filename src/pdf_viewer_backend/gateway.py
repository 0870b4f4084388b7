"""
Client for the external persistence service that stores document bytes.

The service exposes two endpoints:
- GET  /download/{id}   -> raw PDF bytes
- POST /upload?id={id}  -> multipart field ``pdfFile``; JSON ``{"filePath": ...}``

Transfers are not retried; every transport or HTTP failure surfaces as a
NetworkError for the caller to decide on.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import NetworkError, NetworkErrorKind
from .utils import PDF_CONTENT_TYPE

logger = logging.getLogger(__name__)

UPLOAD_FIELD = "pdfFile"


class PersistenceGateway:
    """
    Async HTTP client for document download/upload.

    Attributes:
        base_url: Root URL of the persistence service
        timeout_s: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: Root URL of the persistence service
            timeout_s: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass an httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s, transport=self._transport)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error(f"{method} {url} timed out after {self.timeout_s}s")
            raise NetworkError(NetworkErrorKind.TIMEOUT, f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            logger.error(f"{method} {url} unreachable: {exc}")
            raise NetworkError(NetworkErrorKind.UNREACHABLE, f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            logger.error(f"{method} {url} returned HTTP {response.status_code}")
            raise NetworkError(
                NetworkErrorKind.SERVER_ERROR,
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def download(self, document_id: str) -> bytes:
        response = await self._send("GET", f"/download/{document_id}")
        logger.info(f"Downloaded document {document_id} ({len(response.content)} bytes)")
        return response.content

    async def upload(self, document_id: str, data: bytes, filename: str = "document.pdf") -> str:
        """
        Upload output bytes for a document id.

        Returns:
            The ``filePath`` reported by the service

        Raises:
            NetworkError: On transport failure, timeout, HTTP error or a
                response body without ``filePath``
        """
        response = await self._send(
            "POST",
            "/upload",
            params={"id": document_id},
            files={UPLOAD_FIELD: (filename, data, PDF_CONTENT_TYPE)},
        )
        try:
            file_path = response.json()["filePath"]
        except (ValueError, KeyError, TypeError) as exc:
            raise NetworkError(
                NetworkErrorKind.SERVER_ERROR,
                "Upload response did not include filePath",
                status_code=response.status_code,
            ) from exc
        logger.info(f"Uploaded document {document_id} to {file_path}")
        return str(file_path)
