"""Async client for the bulk ingestion REST contract exposed by the console backend."""

from __future__ import annotations

from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from ..exceptions import ConfigurationError, RemoteCallError
from ..monitoring.tracing import correlation_headers
from ..schemas.ingestion import ProcessFileRequest, UploadBatchRequest
from ..utils.config import IngestorSettings
from ..utils.logging import setup_logger
from ..utils.retry import RetryConfig, execute_with_retry


class IngestionAPIClient:
    """
    Thin wrapper over httpx speaking the ingestion service's JSON envelope.

    Every response is a JSON object with a ``success`` flag; failures carry a
    ``message``. Any transport error, non-2xx status, non-JSON body or
    ``success: false`` is raised as :class:`RemoteCallError` with the most
    specific message available.
    """

    ENDPOINTS = {
        "streams": "/streams",
        "stream_details": "/streams/{key}/details",
        "process_file": "/process-file",
        "get_token": "/get-token",
        "create_job": "/create-job",
        "upload_batch": "/upload-batch",
        "complete_job": "/complete-job",
    }

    logger = setup_logger(__name__)

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 600.0,
        headers: dict[str, str] | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError("Ingestion client requires a base_url")
        if timeout <= 0:
            raise ConfigurationError("timeout must be greater than zero seconds")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._retry_config = retry_config or RetryConfig()
        self.logger.debug("Ingestion client retry policy: %s", self._retry_config.describe())
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: IngestorSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> IngestionAPIClient:
        return cls(
            settings.base_url,
            timeout=settings.request_timeout_seconds,
            headers=settings.session_headers,
            retry_config=settings.retry,
            transport=transport,
        )

    async def __aenter__(self) -> IngestionAPIClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_streams(self) -> list[dict[str, Any]]:
        body = await self._request("GET", self.ENDPOINTS["streams"])
        streams = body.get("streams") or []
        if not isinstance(streams, list):
            raise RemoteCallError(
                "Malformed streams response: 'streams' is not a list",
                endpoint=self.ENDPOINTS["streams"],
            )
        return streams

    async def get_stream_details(self, stream_key: str) -> dict[str, Any]:
        path = self.ENDPOINTS["stream_details"].format(key=quote(stream_key, safe=""))
        return await self._request("GET", path)

    async def process_file(self, request: ProcessFileRequest) -> dict[str, Any]:
        return await self._request("POST", self.ENDPOINTS["process_file"], request.to_wire())

    async def get_token(self) -> dict[str, Any]:
        return await self._request("POST", self.ENDPOINTS["get_token"], {})

    async def create_job(
        self,
        *,
        tenant_url: str,
        access_token: str,
        object_name: str,
        source_name: str,
        operation: str = "upsert",
    ) -> dict[str, Any]:
        payload = {
            "tenantUrl": tenant_url,
            "accessToken": access_token,
            "object": object_name,
            "sourceName": source_name,
            "operation": operation,
        }
        return await self._request("POST", self.ENDPOINTS["create_job"], payload)

    async def upload_batch(self, request: UploadBatchRequest) -> dict[str, Any]:
        return await self._request("POST", self.ENDPOINTS["upload_batch"], request.to_wire())

    async def complete_job(
        self,
        *,
        tenant_url: str,
        access_token: str,
        job_id: str,
    ) -> dict[str, Any]:
        payload = {"tenantUrl": tenant_url, "accessToken": access_token, "jobId": job_id}
        return await self._request("POST", self.ENDPOINTS["complete_job"], payload)

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and unwrap the ``success``/``message`` envelope."""

        request_kwargs: dict[str, Any] = {"headers": correlation_headers()}
        if payload is not None:
            request_kwargs["json"] = payload

        async def _send() -> httpx.Response:
            return await self._client.request(method, path, **request_kwargs)

        try:
            response = await execute_with_retry(
                _send,
                method=method,
                retry_config=self._retry_config,
                log=self.logger,
            )
        except httpx.TimeoutException as exc:
            raise RemoteCallError(
                f"Request timed out after {self.timeout:g} seconds",
                endpoint=path,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteCallError(f"Request failed: {exc}", endpoint=path) from exc

        body = self._decode_body(response)

        if response.is_error:
            message = body.get("message") if body else None
            raise RemoteCallError(
                message or f"Request failed with status code {response.status_code}",
                endpoint=path,
                status_code=response.status_code,
            )
        if body is None:
            raise RemoteCallError(
                "Response body was not a JSON object",
                endpoint=path,
                status_code=response.status_code,
            )
        if not body.get("success", False):
            raise RemoteCallError(
                body.get("message") or "Request was not successful",
                endpoint=path,
                status_code=response.status_code,
            )

        self.logger.debug(
            "%s %s succeeded",
            method,
            path,
            extra={"status": response.status_code},
        )
        return body

    @staticmethod
    def _decode_body(response: httpx.Response) -> dict[str, Any] | None:
        try:
            decoded = response.json()
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
