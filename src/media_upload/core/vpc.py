"""Private-network (VPC) uploads straight to storage via pre-signed URLs."""

import logging
import time
from typing import BinaryIO, Dict, List, Optional, Union
from urllib.parse import urlsplit

import requests

from .checksum import crc64_ecma, crc64_ecma_file
from .exceptions import (
    IntegrityError,
    PartCountMismatchError,
    TransferError,
    ValidationError,
)
from .models import (
    PartUploadInfo,
    UploadAction,
    VpcTosUploadAddress,
    VpcUploadPart,
    VpcUploadPartsInfo,
)
from .planner import count_presigned_parts
from .telemetry import TelemetryReporter
from .transport import read_exact

logger = logging.getLogger(__name__)

QUICK_COMPLETE_ENABLED = "enable"
MODE_DIRECT = "direct"
MODE_PART = "part"


class VpcUploader:
    """Uploads through pre-signed PUT URLs handed out by the control plane.

    ``direct`` mode sends the whole payload in one PUT. ``part`` mode
    sends the parts one after another, in the exact partition the server
    signed URLs for, and completes them with a single POST. Every file
    request is checked against the CRC-64 the storage side reports.
    """

    REQUEST_ID_HEADER = "x-tos-request-id"
    CRC64_HEADER = "x-tos-hash-crc64ecma"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        reporter: Optional[TelemetryReporter] = None,
        timeout: int = 900,
    ) -> None:
        self.session = session or requests.Session()
        self.reporter = reporter or TelemetryReporter()
        self.timeout = timeout

    @staticmethod
    def _skip(address: VpcTosUploadAddress) -> bool:
        if address.quick_complete_mode == QUICK_COMPLETE_ENABLED:
            logger.info("Object already stored (quick complete), skipping transfer")
            return True
        return False

    def upload_file(
        self, address: VpcTosUploadAddress, file_path: str, size: int, space_name: str = ""
    ) -> None:
        """Upload a local file according to ``address.upload_mode``."""
        if self._skip(address):
            return
        if address.upload_mode == MODE_DIRECT:
            self.put_file(address, file_path, space_name)
        elif address.upload_mode == MODE_PART:
            self.upload_file_parts(address.part_upload_info, file_path, size, space_name)
        else:
            raise ValidationError("upload_mode", address.upload_mode, "unsupported vpc upload mode")

    def upload_stream(
        self, address: VpcTosUploadAddress, content: BinaryIO, size: int, space_name: str = ""
    ) -> None:
        """Upload a binary stream according to ``address.upload_mode``."""
        if self._skip(address):
            return
        if address.upload_mode == MODE_DIRECT:
            self.put_stream(address, content, space_name)
        elif address.upload_mode == MODE_PART:
            self.upload_stream_parts(address.part_upload_info, content, size, space_name)
        else:
            raise ValidationError("upload_mode", address.upload_mode, "unsupported vpc upload mode")

    def put_file(self, address: VpcTosUploadAddress, file_path: str, space_name: str = "") -> None:
        expected = crc64_ecma_file(file_path)
        with open(file_path, "rb") as f:
            response = self._send(
                UploadAction.VPC_DIRECT_UPLOAD,
                "PUT",
                address.put_url,
                dict(address.put_url_headers),
                f,
                space_name,
            )
        self._verify(response, expected)

    def put_stream(self, address: VpcTosUploadAddress, content: BinaryIO, space_name: str = "") -> None:
        # No local checksum: the stream cannot be re-read.
        self._send(
            UploadAction.VPC_DIRECT_UPLOAD,
            "PUT",
            address.put_url,
            dict(address.put_url_headers),
            content,
            space_name,
        )

    @staticmethod
    def _check_part_count(info: Optional[PartUploadInfo], size: int) -> PartUploadInfo:
        if info is None:
            raise ValidationError("part_upload_info", None, "empty partInfo")
        expected = count_presigned_parts(size, info.part_size)
        if len(info.part_put_urls) != expected:
            raise PartCountMismatchError(expected, len(info.part_put_urls))
        return info

    def upload_file_parts(
        self, info: Optional[PartUploadInfo], file_path: str, size: int, space_name: str = ""
    ) -> None:
        info = self._check_part_count(info, size)
        parts: List[VpcUploadPart] = []
        with open(file_path, "rb") as f:
            for index, put_url in enumerate(info.part_put_urls):
                offset = index * info.part_size
                f.seek(offset)
                data = f.read(min(info.part_size, size - offset))
                etag = self.put_part(put_url, data, space_name)
                parts.append(VpcUploadPart(part_number=index + 1, etag=etag))
                logger.debug(f"VPC part {index + 1}/{len(info.part_put_urls)} uploaded")
        self.complete(info, parts, space_name)

    def upload_stream_parts(
        self, info: Optional[PartUploadInfo], content: BinaryIO, size: int, space_name: str = ""
    ) -> None:
        info = self._check_part_count(info, size)
        parts: List[VpcUploadPart] = []
        for index, put_url in enumerate(info.part_put_urls):
            length = min(info.part_size, size - index * info.part_size)
            data = read_exact(content, length)
            if len(data) != length:
                raise ValidationError("size", size, "size & content mismatch")
            etag = self.put_part(put_url, data, space_name)
            parts.append(VpcUploadPart(part_number=index + 1, etag=etag))
        if content.read(1):
            raise ValidationError("size", size, "size & content mismatch")
        self.complete(info, parts, space_name)

    def put_part(self, put_url: str, data: bytes, space_name: str = "") -> str:
        """Upload one part and return its ETag once its CRC-64 is verified."""
        expected = crc64_ecma(data)
        response = self._send(UploadAction.VPC_CHUNK_UPLOAD, "PUT", put_url, {}, data, space_name)
        self._verify(response, expected)
        return response.headers.get("ETag", "")

    def complete(
        self, info: PartUploadInfo, parts: List[VpcUploadPart], space_name: str = ""
    ) -> None:
        """POST the ordered ``{PartNumber, ETag}`` list to the completion URL."""
        body = VpcUploadPartsInfo(parts=sorted(parts, key=lambda p: p.part_number))
        self._send(
            UploadAction.VPC_MERGE_CHUNK,
            "POST",
            info.complete_part_url,
            dict(info.complete_url_headers),
            body.model_dump_json(by_alias=True).encode(),
            space_name,
        )

    def _verify(self, response: requests.Response, expected: str) -> None:
        actual = response.headers.get(self.CRC64_HEADER)
        if actual != expected:
            logger.error(f"CRC-64 mismatch: local {expected}, storage {actual}")
            raise IntegrityError(expected, actual)

    def _send(
        self,
        action: UploadAction,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Union[bytes, BinaryIO],
        space_name: str,
    ) -> requests.Response:
        host = urlsplit(url).netloc
        if not host:
            raise ValidationError("url", url, "pre-signed url is invalid")

        started = time.perf_counter()
        try:
            response = self.session.request(
                method, url, headers=headers, data=body, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            self.reporter.emit(
                action, started, space_name=space_name, http_status=500, host=host, error_message=str(e)
            )
            raise TransferError(f"{action.value} request failed: {e}", transport_status=500) from e

        request_id = response.headers.get(self.REQUEST_ID_HEADER, "")
        if response.status_code != 200:
            self.reporter.emit(
                action,
                started,
                space_name=space_name,
                http_status=response.status_code,
                request_id=request_id,
                host=host,
                error_message=response.text,
            )
            raise TransferError(
                f"{method.lower()} error:{request_id}",
                transport_status=response.status_code,
                request_id=request_id,
            )

        self.reporter.emit(
            action,
            started,
            space_name=space_name,
            http_status=response.status_code,
            request_id=request_id,
            host=host,
        )
        return response

