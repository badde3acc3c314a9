"""Programmatic API for media uploads: apply, transfer, commit."""

import logging
import os
import time
from pathlib import Path
from typing import Any, BinaryIO, List, Optional, Union

import requests

from .control_plane import ControlPlane, ControlPlaneClient
from .exceptions import (
    ControlPlaneError,
    UploadEngineError,
    UploadFailedError,
    ValidationError,
)
from .models import (
    MIN_CHUNK_SIZE,
    STREAM_MIN_CHUNK_SIZE,
    ApplyUploadData,
    ApplyUploadInfoRequest,
    ApplyUploadInfoResponse,
    CommitUploadInfoRequest,
    CommitUploadInfoResponse,
    PartResult,
    ResponseError,
    ResponseMetadata,
    StorageClass,
    StreamUploadRequest,
    UploadAction,
    UploadAddress,
    UploaderConfig,
    UploadMediaRequest,
    UploadOutcome,
    UploadTarget,
)
from .multipart import MultipartUploader, ProgressCallback
from .planner import plan_parts
from .retry import HostFailover
from .telemetry import TelemetryReporter, TelemetrySink
from .transport import GatewayClient, limited_reader, read_exact
from .vpc import VpcUploader

logger = logging.getLogger(__name__)


class MediaUploader:
    """High-level API for uploading files and streams to the media service."""

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        control_plane: Optional[ControlPlane] = None,
        session: Optional[requests.Session] = None,
        telemetry_sink: Optional[TelemetrySink] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the uploader.

        Args:
            config: Engine configuration (or from ``MEDIA_UPLOAD_*`` env vars)
            control_plane: Control-plane implementation (HTTP client by default)
            session: HTTP session used for data-plane requests
            telemetry_sink: Callable receiving one record per network attempt
            progress_callback: Called with (bytes_uploaded, total_bytes, speed_mbps)
                during multipart file uploads
        """
        self.config = config or UploaderConfig.from_env()
        self.control_plane = control_plane or ControlPlaneClient(self.config)
        self.session = session or requests.Session()
        self.reporter = TelemetryReporter(telemetry_sink)
        self.gateway = GatewayClient(self.session, self.reporter)
        self.vpc = VpcUploader(self.session, self.reporter, timeout=self.config.vpc_timeout)
        self.failover = HostFailover(
            attempts=self.config.host_retry_attempts, backoff=self.config.retry_backoff
        )
        self.progress_callback = progress_callback

    # File uploads
    def upload_media(self, request: UploadMediaRequest) -> CommitUploadInfoResponse:
        """Upload a local media file and commit it."""
        return self._upload_and_commit(request.model_copy(update={"file_type": "media"}))

    def upload_object(self, request: UploadMediaRequest) -> CommitUploadInfoResponse:
        """Upload a local file as a plain object and commit it."""
        return self._upload_and_commit(request.model_copy(update={"file_type": "object"}))

    def upload_material(self, request: UploadMediaRequest) -> CommitUploadInfoResponse:
        """Upload a local material file; ``file_type`` names the material kind."""
        return self._upload_and_commit(request)

    # Stream uploads
    def upload_media_stream(self, request: StreamUploadRequest) -> CommitUploadInfoResponse:
        return self._upload_and_commit(request.model_copy(update={"file_type": "media"}))

    def upload_object_stream(self, request: StreamUploadRequest) -> CommitUploadInfoResponse:
        return self._upload_and_commit(request.model_copy(update={"file_type": "object"}))

    def upload_material_stream(self, request: StreamUploadRequest) -> CommitUploadInfoResponse:
        return self._upload_and_commit(request)

    def _upload_and_commit(
        self, request: Union[UploadMediaRequest, StreamUploadRequest]
    ) -> CommitUploadInfoResponse:
        started = time.perf_counter()
        error_message = ""
        try:
            if isinstance(request, StreamUploadRequest):
                outcome = self.upload_stream(request)
            else:
                outcome = self.upload_file(request)
            return self.commit(request, outcome)
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            self.reporter.emit(
                UploadAction.FINISH_UPLOAD,
                started,
                space_name=request.space_name,
                http_status=500 if error_message else 200,
                error_message=error_message,
            )

    def upload_file(self, request: UploadMediaRequest) -> UploadOutcome:
        """Transfer a local file without committing it.

        Returns:
            Object id and session key to commit

        Raises:
            ValidationError: for unusable input (no network call is made)
            UploadFailedError: when apply or transfer fails
        """
        local_path = Path(request.file_path)
        if not local_path.is_file():
            raise ValidationError("file_path", request.file_path, "local file not found")
        size = local_path.stat().st_size
        if size == 0:
            raise ValidationError("file_path", request.file_path, "file size is zero")

        chunk_size = max(request.chunk_size or self.config.chunk_size, MIN_CHUNK_SIZE)
        parallel_num = request.parallel_num or self.config.parallel_num

        response = self.apply(request, size)
        request_id = response.response_metadata.request_id
        try:
            return self._transfer_file(response, request, size, chunk_size, parallel_num)
        except UploadEngineError as e:
            raise self._failed(e, "transfer", request_id) from e
        except OSError as e:
            raise self._failed(e, "transfer", request_id) from e

    def upload_stream(self, request: StreamUploadRequest) -> UploadOutcome:
        """Transfer a binary stream without committing it."""
        chunk_size = request.chunk_size or MIN_CHUNK_SIZE
        if chunk_size < STREAM_MIN_CHUNK_SIZE:
            raise ValidationError(
                "chunk_size", request.chunk_size, "chunk size must be greater than 5MB"
            )
        if request.content is None:
            raise ValidationError("content", None, "content is nil")

        response = self.apply(request, request.size)
        request_id = response.response_metadata.request_id
        try:
            return self._transfer_stream(response, request, chunk_size)
        except UploadEngineError as e:
            raise self._failed(e, "transfer", request_id) from e
        except OSError as e:
            raise self._failed(e, "transfer", request_id) from e

    def apply(
        self, request: Union[UploadMediaRequest, StreamUploadRequest], size: int
    ) -> ApplyUploadInfoResponse:
        """Ask the control plane where and how to upload."""
        apply_request = ApplyUploadInfoRequest(
            space_name=request.space_name,
            file_type=request.file_type,
            file_name=request.file_name,
            file_extension=request.file_extension,
            storage_class=int(request.storage_class),
            client_network_mode=request.client_network_mode,
            client_idc_mode=request.client_idc_mode,
            upload_host_prefer=request.upload_host_prefer,
            file_size=float(size),
        )
        started = time.perf_counter()
        try:
            response = self.control_plane.apply_upload_info(apply_request)
        except ControlPlaneError as e:
            self.reporter.emit(
                UploadAction.APPLY_UPLOAD_INFO,
                started,
                space_name=request.space_name,
                http_status=e.status_code or 500,
                request_id=e.request_id or "",
                error_message=str(e),
            )
            raise self._failed(e, "apply", e.request_id) from e
        logger.info(
            f"Applied upload info for space {request.space_name} "
            f"(request id {response.response_metadata.request_id})"
        )
        return response

    def commit(
        self, request: Union[UploadMediaRequest, StreamUploadRequest], outcome: UploadOutcome
    ) -> CommitUploadInfoResponse:
        """Register a transferred object with the media registry."""
        commit_request = CommitUploadInfoRequest(
            space_name=request.space_name,
            session_key=outcome.session_key,
            callback_args=request.callback_args,
            functions=request.functions,
            upload_source=request.upload_source,
            expire_time=request.expire_time,
        )
        started = time.perf_counter()
        try:
            response = self.control_plane.commit_upload_info(commit_request)
        except ControlPlaneError as e:
            self.reporter.emit(
                UploadAction.COMMIT_UPLOAD_INFO,
                started,
                space_name=request.space_name,
                http_status=e.status_code or 500,
                request_id=e.request_id or "",
                error_message=str(e),
            )
            raise self._failed(e, "commit", e.request_id) from e
        logger.info(f"Committed object {outcome.object_id}")
        return response

    @staticmethod
    def error_response(request_id: Optional[str], message: str) -> CommitUploadInfoResponse:
        """Best-effort response handed back alongside a failure."""
        return CommitUploadInfoResponse(
            response_metadata=ResponseMetadata(
                request_id=request_id or "",
                service="vod",
                error=ResponseError(message=message),
            )
        )

    def _failed(self, error: Exception, phase: str, request_id: Optional[str]) -> UploadFailedError:
        logger.error(f"Upload failed during {phase}: {error}")
        return UploadFailedError(
            f"{phase} failed: {error}",
            phase=phase,
            request_id=request_id,
            response=self.error_response(request_id, str(error)),
        )

    # Target selection
    @staticmethod
    def _apply_data(response: ApplyUploadInfoResponse) -> ApplyUploadData:
        if response.result is None:
            return ApplyUploadData()
        return response.result.data

    @staticmethod
    def _address_target(
        address: UploadAddress, storage_class: StorageClass, space_name: str
    ) -> UploadTarget:
        store_info = address.store_infos[0]
        return UploadTarget(
            hosts=list(address.upload_hosts),
            object_id=store_info.store_uri,
            session_key=address.session_key,
            auth_token=store_info.auth,
            storage_class=storage_class,
            space_name=space_name,
        )

    def candidate_targets(
        self, response: ApplyUploadInfoResponse, storage_class: StorageClass, space_name: str = ""
    ) -> List[UploadTarget]:
        """One target per usable candidate address: main, backup, fallback."""
        candidates = self._apply_data(response).candidate_upload_addresses
        if candidates is None:
            return []
        return [
            self._address_target(address, storage_class, space_name)
            for address in candidates.all_addresses()
            if address.usable
        ]

    def primary_target(
        self, response: ApplyUploadInfoResponse, storage_class: StorageClass, space_name: str = ""
    ) -> UploadTarget:
        """Target built from the single primary upload address."""
        address = self._apply_data(response).upload_address
        if address is None:
            raise ValidationError("upload_address", None, "upload address not exist")
        if not address.upload_hosts:
            raise ValidationError("upload_hosts", [], "no tos host found")
        if not address.store_infos or address.store_infos[0] is None:
            raise ValidationError("store_infos", [], "no store info found")
        return self._address_target(address, storage_class, space_name)

    def build_upload_target(
        self,
        response: ApplyUploadInfoResponse,
        storage_class: StorageClass = StorageClass.STANDARD,
        space_name: str = "",
    ) -> UploadTarget:
        """Target for the low-level primitives, with every candidate host.

        Object id, session key and auth come from the primary upload
        address; hosts are the candidate hosts in priority order when the
        control plane returned any.
        """
        target = self.primary_target(response, storage_class, space_name)
        candidates = self._apply_data(response).candidate_upload_addresses
        if candidates is not None:
            hosts = [host for address in candidates.all_addresses() for host in address.upload_hosts]
            if hosts:
                target = target.model_copy(update={"hosts": hosts})
        return target

    def _vpc_outcome(self, response: ApplyUploadInfoResponse) -> UploadOutcome:
        address = self._apply_data(response).upload_address
        if address is None or not address.store_infos or address.store_infos[0] is None:
            raise ValidationError("upload_address", None, "upload address not exist")
        return UploadOutcome(
            object_id=address.store_infos[0].store_uri, session_key=address.session_key
        )

    # Transfers
    def _transfer_file(
        self,
        response: ApplyUploadInfoResponse,
        request: UploadMediaRequest,
        size: int,
        chunk_size: int,
        parallel_num: int,
    ) -> UploadOutcome:
        data = self._apply_data(response)
        if data.vpc_tos_upload_address is not None:
            logger.info("Uploading through VPC pre-signed URLs")
            self.vpc.upload_file(
                data.vpc_tos_upload_address, request.file_path, size, request.space_name
            )
            return self._vpc_outcome(response)

        targets = self.candidate_targets(response, request.storage_class, request.space_name)
        if not targets:
            targets = [self.primary_target(response, request.storage_class, request.space_name)]

        if size <= chunk_size:
            logger.info(f"Uploading {size} bytes in a single request")
            payload = Path(request.file_path).read_bytes()

            def transfer(target: UploadTarget, attempt: int) -> Any:
                return self.gateway.put_object(target, payload, attempt)

        else:
            parts = plan_parts(size, chunk_size)
            uploader = MultipartUploader(
                self.gateway,
                parallel_num=parallel_num,
                part_retry_attempts=self.config.part_retry_attempts,
                retry_backoff=self.config.retry_backoff,
                progress_callback=self.progress_callback,
            )

            def transfer(target: UploadTarget, attempt: int) -> Any:
                return uploader.upload(request.file_path, target, chunk_size, parts, attempt)

        target, _ = self.failover.run(targets, transfer)
        return UploadOutcome(object_id=target.object_id, session_key=target.session_key)

    def _transfer_stream(
        self, response: ApplyUploadInfoResponse, request: StreamUploadRequest, chunk_size: int
    ) -> UploadOutcome:
        data = self._apply_data(response)
        if data.vpc_tos_upload_address is not None:
            logger.info("Uploading stream through VPC pre-signed URLs")
            self.vpc.upload_stream(
                data.vpc_tos_upload_address, request.content, request.size, request.space_name
            )
            return self._vpc_outcome(response)

        target = self.build_upload_target(response, request.storage_class, request.space_name)
        self.stream_upload_content(target, request.content, request.size, chunk_size)
        return UploadOutcome(object_id=target.object_id, session_key=target.session_key)

    def stream_upload_content(
        self, target: UploadTarget, content: BinaryIO, size: int, chunk_size: int
    ) -> None:
        """Upload a stream against ``target`` with the primitives below.

        Streams longer than ``chunk_size`` go up part by part; a size of 0
        means the length is unknown.
        """
        self.check_target(target)
        if size == 0:
            self.stream_upload_content_in_chunk(target, content, chunk_size)
            return
        if size <= chunk_size:
            self.put_object(target, content=content)
            return

        upload_id = self.create_multipart_upload(target)
        results: List[PartResult] = []
        part_number = 1
        while True:
            probe = content.read(1)
            if not probe:
                break
            results.append(
                self.upload_part(
                    target,
                    upload_id,
                    part_number,
                    content=limited_reader(content, chunk_size, prefix=probe),
                )
            )
            part_number += 1
        self.complete_multipart_upload(target, upload_id, results)

    def stream_upload_content_in_chunk(
        self, target: UploadTarget, content: BinaryIO, chunk_size: int
    ) -> None:
        """Upload a stream of unknown length, buffering one chunk at a time."""
        self.check_target(target)
        data = read_exact(content, chunk_size)
        if len(data) < chunk_size:
            self.put_object(target, data=data)
            return

        upload_id = self.create_multipart_upload(target)
        results: List[PartResult] = []
        part_number = 1
        while data:
            results.append(self.upload_part(target, upload_id, part_number, data=data))
            part_number += 1
            data = read_exact(content, chunk_size)
        self.complete_multipart_upload(target, upload_id, results)

    # Low-level primitives for callers driving their own chunking
    @staticmethod
    def check_target(target: Optional[UploadTarget]) -> UploadTarget:
        if target is None or not target.auth_token or not target.object_id or not target.hosts:
            raise ValidationError("target", target, "wrong upload common info")
        return target

    def create_multipart_upload(self, target: UploadTarget) -> str:
        """Open a multipart session on the target's preferred host."""
        return self.gateway.init_multipart(self.check_target(target))

    def upload_part(
        self,
        target: UploadTarget,
        upload_id: str,
        part_number: int,
        data: Optional[bytes] = None,
        content: Optional[Any] = None,
    ) -> PartResult:
        """Upload one part from bytes (with CRC-32) or from a stream."""
        self.check_target(target)
        if data:
            return self.gateway.upload_part(target, upload_id, part_number, data)
        if content is not None:
            return self.gateway.upload_part_stream(target, upload_id, part_number, content)
        raise ValidationError("data", None, "nil data&content")

    def complete_multipart_upload(
        self, target: UploadTarget, upload_id: str, parts: List[PartResult]
    ) -> None:
        """Merge ``parts``; part 1's content type is forwarded when known."""
        self.check_target(target)
        content_type = next((p.content_type_hint for p in parts if p.number == 1), None)
        self.gateway.complete_multipart(target, upload_id, parts, content_type)

    def put_object(
        self, target: UploadTarget, data: Optional[bytes] = None, content: Optional[Any] = None
    ) -> None:
        """Upload a whole object from bytes (with CRC-32) or from a stream."""
        self.check_target(target)
        if data:
            self.gateway.put_object(target, data)
        elif content is not None:
            self.gateway.put_object_stream(target, content)
        else:
            raise ValidationError("data", None, "nil data and content")


# Convenience functions for quick usage
def upload_file(
    local_path: Union[str, Path],
    space_name: str,
    file_type: str = "media",
    config: Optional[UploaderConfig] = None,
    **options: Any,
) -> CommitUploadInfoResponse:
    """Quick function to upload and commit a local file."""
    uploader = MediaUploader(config)
    request = UploadMediaRequest(
        file_path=os.fspath(local_path), space_name=space_name, file_type=file_type, **options
    )
    if file_type == "object":
        return uploader.upload_object(request)
    if file_type == "media":
        return uploader.upload_media(request)
    return uploader.upload_material(request)


def upload_stream(
    content: BinaryIO,
    space_name: str,
    size: int = 0,
    file_type: str = "media",
    config: Optional[UploaderConfig] = None,
    **options: Any,
) -> CommitUploadInfoResponse:
    """Quick function to upload and commit a binary stream."""
    uploader = MediaUploader(config)
    request = StreamUploadRequest(
        content=content, size=size, space_name=space_name, file_type=file_type, **options
    )
    if file_type == "object":
        return uploader.upload_object_stream(request)
    if file_type == "media":
        return uploader.upload_media_stream(request)
    return uploader.upload_material_stream(request)
