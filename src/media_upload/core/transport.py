"""Gateway data-plane client: whole-object PUT, multipart init, part and merge."""

import logging
import time
from typing import BinaryIO, Dict, Iterable, Iterator, Optional, Union
from urllib.parse import quote

import requests

from .checksum import CRC32_IGNORE, crc32_hex
from .exceptions import TransferError
from .models import GatewayResponse, PartResult, StorageClass, UploadAction, UploadTarget
from .planner import build_merge_body
from .telemetry import TelemetryReporter

logger = logging.getLogger(__name__)

Body = Union[bytes, BinaryIO, Iterable[bytes]]

STREAM_BLOCK_SIZE = 1024 * 1024


def limited_reader(
    content: BinaryIO, limit: int, prefix: bytes = b"", block_size: int = STREAM_BLOCK_SIZE
) -> Iterator[bytes]:
    """Yield at most ``limit`` bytes: ``prefix`` first, then from ``content``."""
    remaining = limit
    if prefix:
        head = prefix[:remaining]
        remaining -= len(head)
        yield head
    while remaining > 0:
        block = content.read(min(block_size, remaining))
        if not block:
            break
        remaining -= len(block)
        yield block


class GatewayClient:
    """Issues data-plane requests through the shared upload gateway.

    Every request reports one telemetry record and is answered with the
    JSON envelope ``{"success": 0, "payload": {...}}``; a non-zero
    ``success`` is raised as ``TransferError`` carrying the envelope codes.
    """

    LOG_HEADER = "X-Tt-Logid"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        reporter: Optional[TelemetryReporter] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.reporter = reporter or TelemetryReporter()

    @staticmethod
    def _headers(
        target: UploadTarget, checksum: Optional[str] = None, gateway: bool = True
    ) -> Dict[str, str]:
        headers = {"Authorization": target.auth_token}
        if checksum is not None:
            headers["Content-CRC32"] = checksum
        if gateway:
            headers["X-Storage-Mode"] = "gateway"
        storage_class = StorageClass(target.storage_class).header_value
        if storage_class:
            headers["X-Upload-Storage-Class"] = storage_class
        return headers

    def _send(
        self,
        action: UploadAction,
        target: UploadTarget,
        url: str,
        headers: Dict[str, str],
        body: Optional[Body] = None,
        retry_count: int = 0,
    ) -> GatewayResponse:
        host = target.host
        started = time.perf_counter()
        report = {"space_name": target.space_name, "retry_count": retry_count, "host": host}
        try:
            response = self.session.request("PUT", url, headers=headers, data=body)
        except requests.exceptions.RequestException as e:
            self.reporter.emit(action, started, http_status=500, error_message=str(e), **report)
            raise TransferError(f"{action.value} request failed: {e}", transport_status=500) from e

        request_id = response.headers.get(self.LOG_HEADER, "")
        try:
            envelope = GatewayResponse.model_validate(response.json())
        except ValueError as e:
            message = f"unmarshal {action.value} response failed: {e}, got result: {response.text}"
            self.reporter.emit(
                action,
                started,
                http_status=response.status_code,
                request_id=request_id,
                error_message=message,
                **report,
            )
            raise TransferError(
                message, transport_status=response.status_code, request_id=request_id
            ) from e

        if envelope.success != 0:
            error = envelope.error
            message = error.message or error.error or f"{action.value} failed"
            self.reporter.emit(
                action,
                started,
                http_status=response.status_code,
                request_id=request_id,
                error_message=message,
                **report,
            )
            raise TransferError(
                message,
                transport_status=error.code or response.status_code,
                service_code=error.error_code or None,
                service_sub_code=error.sub_code or None,
                request_id=request_id,
            )

        self.reporter.emit(
            action, started, http_status=response.status_code, request_id=request_id, **report
        )
        return envelope

    def put_object(self, target: UploadTarget, data: bytes, retry_count: int = 0) -> None:
        """Upload a whole in-memory payload with its CRC-32."""
        url = f"https://{target.host}/{target.object_id}"
        headers = self._headers(target, crc32_hex(data), gateway=False)
        logger.debug(f"PUT {url} ({len(data)} bytes)")
        self._send(UploadAction.DIRECT_UPLOAD, target, url, headers, data, retry_count)

    def put_object_stream(self, target: UploadTarget, content: Body, retry_count: int = 0) -> None:
        """Upload a whole stream; the checksum cannot be computed up front."""
        url = f"https://{target.host}/{target.object_id}"
        headers = self._headers(target, CRC32_IGNORE, gateway=False)
        logger.debug(f"PUT {url} (stream)")
        self._send(UploadAction.DIRECT_UPLOAD, target, url, headers, content, retry_count)

    def init_multipart(self, target: UploadTarget, retry_count: int = 0) -> str:
        """Open a multipart session and return its upload id."""
        url = f"https://{target.host}/{target.object_id}?uploads"
        envelope = self._send(
            UploadAction.INIT_CHUNK, target, url, self._headers(target), None, retry_count
        )
        return envelope.payload.upload_id

    def upload_part(
        self,
        target: UploadTarget,
        upload_id: str,
        part_number: int,
        data: bytes,
        retry_count: int = 0,
    ) -> PartResult:
        """Upload one in-memory part."""
        checksum = crc32_hex(data)
        return self._put_part(target, upload_id, part_number, data, checksum, retry_count)

    def upload_part_stream(
        self,
        target: UploadTarget,
        upload_id: str,
        part_number: int,
        content: Body,
        retry_count: int = 0,
    ) -> PartResult:
        """Upload one part read from a stream, without a checksum."""
        return self._put_part(target, upload_id, part_number, content, CRC32_IGNORE, retry_count)

    def _put_part(
        self,
        target: UploadTarget,
        upload_id: str,
        part_number: int,
        body: Body,
        checksum: str,
        retry_count: int,
    ) -> PartResult:
        url = (
            f"https://{target.host}/{target.object_id}"
            f"?partNumber={part_number}&uploadID={upload_id}"
        )
        envelope = self._send(
            UploadAction.CHUNK_UPLOAD,
            target,
            url,
            self._headers(target, checksum),
            body,
            retry_count,
        )
        return PartResult(
            number=part_number,
            checksum=checksum,
            content_type_hint=envelope.payload.meta.object_content_type or None,
        )

    def complete_multipart(
        self,
        target: UploadTarget,
        upload_id: str,
        results: Iterable[PartResult],
        content_type: Optional[str] = None,
        retry_count: int = 0,
    ) -> None:
        """Merge uploaded parts into the final object."""
        body = build_merge_body(results)
        url = f"https://{target.host}/{target.object_id}?uploadID={upload_id}"
        if StorageClass(target.storage_class).header_value and content_type:
            url += f"&ObjectContentType={quote(content_type, safe='')}"
        self._send(
            UploadAction.MERGE_CHUNK,
            target,
            url,
            self._headers(target),
            body.encode(),
            retry_count,
        )


def read_exact(content: BinaryIO, length: int) -> bytes:
    """Read ``length`` bytes unless the stream ends first."""
    chunks = []
    remaining = length
    while remaining > 0:
        block = content.read(remaining)
        if not block:
            break
        chunks.append(block)
        remaining -= len(block)
    return b"".join(chunks)
