"""Discovery of ingestion-capable data streams."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..client.ingestion_api import IngestionAPIClient
from ..exceptions import DiscoveryError, RemoteCallError, StreamDetailError
from ..monitoring.tracing import trace_span
from ..schemas.ingestion import DataStream
from ..utils.logging import setup_logger


class StreamCatalog:
    """Lists ingestion streams and resolves the job target of a selected stream."""

    logger = setup_logger(__name__, context={"phase": "discovery"})

    def __init__(self, client: IngestionAPIClient) -> None:
        self._client = client
        self._streams: tuple[DataStream, ...] = ()

    @property
    def streams(self) -> tuple[DataStream, ...]:
        """Streams returned by the most recent successful listing."""
        return self._streams

    async def list_streams(self) -> list[DataStream]:
        """
        Fetch the ingestion streams in catalog order.

        Raises:
            DiscoveryError: ``reason="request_failed"`` when the call fails or the
                payload is malformed, ``reason="empty"`` when no stream is returned.
        """
        with trace_span("list_streams") as span:
            try:
                raw_streams = await self._client.list_streams()
                streams = [DataStream.model_validate(item) for item in raw_streams]
            except RemoteCallError as exc:
                self.logger.error("Stream listing failed: %s", exc.message, extra={"status": "error"})
                raise DiscoveryError(
                    f"Failed to fetch data streams: {exc.message}",
                    reason=DiscoveryError.REQUEST_FAILED,
                ) from exc
            except PydanticValidationError as exc:
                raise DiscoveryError(
                    f"Failed to fetch data streams: malformed stream entry ({exc.error_count()} errors)",
                    reason=DiscoveryError.REQUEST_FAILED,
                ) from exc
            span.metadata["stream_count"] = len(streams)

        if not streams:
            self.logger.warning("No ingestion API streams found", extra={"status": "empty"})
            raise DiscoveryError(
                "No ingestion API data streams found",
                reason=DiscoveryError.EMPTY,
            )

        self._streams = tuple(streams)
        self.logger.info("Discovered %d ingestion streams", len(streams), extra={"status": "success"})
        return streams

    async def get_stream_detail(self, stream: DataStream) -> DataStream:
        """
        Return ``stream`` extended with its source name, target object and connection metadata.

        Streams without an id or api name cannot be looked up and are returned unchanged.

        Raises:
            StreamDetailError: If the detail lookup fails
        """
        key = stream.key
        if not key:
            return stream

        with trace_span("stream_detail", stream=key):
            try:
                body = await self._client.get_stream_details(key)
            except RemoteCallError as exc:
                self.logger.error(
                    "Stream detail lookup failed: %s",
                    exc.message,
                    extra={"stream": key, "status": "error"},
                )
                raise StreamDetailError(
                    f"Failed to fetch stream details: {exc.message}",
                    stream_key=key,
                ) from exc

        update: dict[str, Any] = {"details": body.get("details") or {}}
        if body.get("sourceName"):
            update["source_name"] = body["sourceName"]
        if body.get("object"):
            update["target_object"] = body["object"]
        if body.get("connectionDetails") is not None:
            update["connection_details"] = body["connectionDetails"]
        if body.get("connectionSchema") is not None:
            update["connection_schema"] = body["connectionSchema"]

        resolved = stream.model_copy(update=update)
        self.logger.info(
            "Resolved stream target object=%s source=%s",
            resolved.target_object or "-",
            resolved.source_name or "-",
            extra={"stream": key, "status": "success"},
        )
        return resolved

    def find(self, key: str) -> DataStream | None:
        """Look up a stream from the last listing by id, api name or display name."""

        for stream in self._streams:
            if key in (stream.id, stream.api_name, stream.name):
                return stream
        return None
