"""
Pydantic models for Media Upload.

Covers the upload engine's own data model (targets, part plans, part
results), the control-plane payloads it consumes, the storage gateway
response envelope, caller-facing request models and configuration.
"""

import os
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_PARTS = 10000
MIN_CHUNK_SIZE = 20 * 1024 * 1024
STREAM_MIN_CHUNK_SIZE = 5 * 1024 * 1024
DEFAULT_API_URL = "https://vod.volcengineapi.com"


class StorageClass(IntEnum):
    """Storage class requested for the uploaded object."""

    STANDARD = 1
    ARCHIVE = 2
    IA = 3

    @property
    def header_value(self) -> Optional[str]:
        """Value of ``X-Upload-Storage-Class``; standard sends no header."""
        return {StorageClass.ARCHIVE: "archive", StorageClass.IA: "ia"}.get(self)

    @classmethod
    def from_name(cls, name: str) -> "StorageClass":
        """Parse ``standard``, ``ia`` or ``archive`` (case-insensitive)."""
        return {"standard": cls.STANDARD, "ia": cls.IA, "archive": cls.ARCHIVE}[
            name.strip().lower()
        ]


class UploadAction(str, Enum):
    """Action tags attached to telemetry records."""

    APPLY_UPLOAD_INFO = "apply-upload-info"
    INIT_CHUNK = "init-chunk"
    CHUNK_UPLOAD = "chunk-upload"
    MERGE_CHUNK = "merge-chunk"
    DIRECT_UPLOAD = "direct-upload"
    VPC_DIRECT_UPLOAD = "vpc-direct-upload"
    VPC_CHUNK_UPLOAD = "vpc-chunk-upload"
    VPC_MERGE_CHUNK = "vpc-merge-chunk"
    COMMIT_UPLOAD_INFO = "commit-upload-info"
    FINISH_UPLOAD = "finish-upload"


# Upload engine data model
class UploadTarget(BaseModel):
    """Negotiated destination of one upload attempt."""

    model_config = ConfigDict(frozen=True)

    hosts: List[str] = Field(..., description="Ordered upload host candidates")
    object_id: str = Field(..., description="Storage object id (store URI)")
    session_key: str = Field("", description="Opaque key submitted at commit")
    auth_token: str = Field(..., description="Authorization header value")
    storage_class: StorageClass = Field(StorageClass.STANDARD)
    preferred_host_index: int = Field(0, ge=0)
    space_name: str = Field("", description="Space the upload belongs to")

    @property
    def host(self) -> str:
        """Host to talk to; the preferred index is honoured when in range."""
        index = 0
        if 0 < self.preferred_host_index < len(self.hosts):
            index = self.preferred_host_index
        return self.hosts[index]


class PartSpec(BaseModel):
    """Byte range of one planned part."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)
    length: int = Field(..., ge=0)


class PartResult(BaseModel):
    """Outcome of a successful part upload."""

    number: int = Field(..., ge=1)
    checksum: str
    content_type_hint: Optional[str] = None


class MultipartSession(BaseModel):
    """A multipart upload opened against one target."""

    upload_id: str
    target: UploadTarget
    parts: List[PartSpec] = Field(default_factory=list)


class UploadOutcome(BaseModel):
    """Object reference produced by a finished transfer."""

    object_id: str
    session_key: str


class TelemetryRecord(BaseModel):
    """One network attempt as reported to the telemetry collaborator."""

    space_name: str = ""
    latency_us: int = 0
    http_status: int = 0
    retry_count: int = 0
    request_id: str = ""
    action: UploadAction
    host: str = ""
    error_message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Storage gateway response envelope
class GatewayError(BaseModel):
    """Error object of the gateway response envelope."""

    code: int = 0
    error_code: int = Field(
        0, validation_alias=AliasChoices("errorCode", "errorcode", "error_code")
    )
    sub_code: int = Field(
        0, validation_alias=AliasChoices("subCode", "subcode", "sub_code")
    )
    error: str = ""
    message: str = ""


class GatewayMeta(BaseModel):
    """Object metadata returned by a part upload."""

    object_content_type: str = Field("", alias="ObjectContentType")

    model_config = ConfigDict(populate_by_name=True)


class GatewayPayload(BaseModel):
    """Payload of a successful gateway response."""

    upload_id: str = Field("", validation_alias=AliasChoices("uploadID", "uploadId"))
    hash: str = ""
    meta: GatewayMeta = Field(default_factory=GatewayMeta)


class GatewayResponse(BaseModel):
    """JSON envelope returned by every gateway request."""

    success: int
    error: GatewayError = Field(default_factory=GatewayError)
    payload: GatewayPayload = Field(default_factory=GatewayPayload)


# Control-plane payloads
class _ServiceModel(BaseModel):
    """Base for models mirroring the control plane's PascalCase JSON."""

    model_config = ConfigDict(populate_by_name=True)


class StoreInfo(_ServiceModel):
    store_uri: str = Field("", alias="StoreUri")
    auth: str = Field("", alias="Auth")


class UploadAddress(_ServiceModel):
    store_infos: List[Optional[StoreInfo]] = Field(default_factory=list, alias="StoreInfos")
    upload_hosts: List[str] = Field(default_factory=list, alias="UploadHosts")
    session_key: str = Field("", alias="SessionKey")

    @property
    def usable(self) -> bool:
        """True when the address has a host and a first store info."""
        return bool(self.upload_hosts and self.store_infos and self.store_infos[0])


class CandidateUploadAddresses(_ServiceModel):
    main_upload_addresses: List[UploadAddress] = Field(
        default_factory=list, alias="MainUploadAddresses"
    )
    backup_upload_addresses: List[UploadAddress] = Field(
        default_factory=list, alias="BackupUploadAddresses"
    )
    fallback_upload_addresses: List[UploadAddress] = Field(
        default_factory=list, alias="FallbackUploadAddresses"
    )

    def all_addresses(self) -> List[UploadAddress]:
        """Main, then backup, then fallback addresses."""
        return (
            self.main_upload_addresses
            + self.backup_upload_addresses
            + self.fallback_upload_addresses
        )


class PartUploadInfo(_ServiceModel):
    part_size: int = Field(0, alias="PartSize")
    part_put_urls: List[str] = Field(default_factory=list, alias="PartPutUrls")
    complete_part_url: str = Field("", alias="CompletePartUrl")
    complete_url_headers: Dict[str, str] = Field(
        default_factory=dict, alias="CompleteUrlHeaders"
    )


class VpcTosUploadAddress(_ServiceModel):
    upload_mode: str = Field("", alias="UploadMode")
    put_url: str = Field("", alias="PutUrl")
    put_url_headers: Dict[str, str] = Field(default_factory=dict, alias="PutUrlHeaders")
    part_upload_info: Optional[PartUploadInfo] = Field(None, alias="PartUploadInfo")
    quick_complete_mode: str = Field("", alias="QuickCompleteMode")


class ApplyUploadData(_ServiceModel):
    upload_address: Optional[UploadAddress] = Field(None, alias="UploadAddress")
    candidate_upload_addresses: Optional[CandidateUploadAddresses] = Field(
        None, alias="CandidateUploadAddresses"
    )
    vpc_tos_upload_address: Optional[VpcTosUploadAddress] = Field(
        None, alias="VpcTosUploadAddress"
    )


class ApplyUploadResult(_ServiceModel):
    data: ApplyUploadData = Field(default_factory=ApplyUploadData, alias="Data")


class ResponseError(_ServiceModel):
    code: str = Field("", alias="Code")
    code_n: int = Field(0, alias="CodeN")
    message: str = Field("", alias="Message")


class ResponseMetadata(_ServiceModel):
    request_id: str = Field("", alias="RequestId")
    action: str = Field("", alias="Action")
    version: str = Field("", alias="Version")
    service: str = Field("vod", alias="Service")
    error: Optional[ResponseError] = Field(None, alias="Error")

    @property
    def failed(self) -> bool:
        return self.error is not None and self.error.code not in ("", "0")


class ApplyUploadInfoResponse(_ServiceModel):
    response_metadata: ResponseMetadata = Field(
        default_factory=ResponseMetadata, alias="ResponseMetadata"
    )
    result: Optional[ApplyUploadResult] = Field(None, alias="Result")


class CommitUploadData(_ServiceModel):
    vid: str = Field("", alias="Vid")
    mid: str = Field("", alias="Mid")
    poster_uri: str = Field("", alias="PosterUri")
    space_name: str = Field("", alias="SpaceName")
    callback_args: str = Field("", alias="CallbackArgs")
    source_info: Dict[str, Any] = Field(default_factory=dict, alias="SourceInfo")


class CommitUploadResult(_ServiceModel):
    request_id: str = Field("", alias="RequestId")
    data: Optional[CommitUploadData] = Field(None, alias="Data")


class CommitUploadInfoResponse(_ServiceModel):
    response_metadata: ResponseMetadata = Field(
        default_factory=ResponseMetadata, alias="ResponseMetadata"
    )
    result: Optional[CommitUploadResult] = Field(None, alias="Result")


class ApplyUploadInfoRequest(_ServiceModel):
    space_name: str = Field(..., alias="SpaceName")
    file_type: str = Field("", alias="FileType")
    file_name: str = Field("", alias="FileName")
    file_extension: str = Field("", alias="FileExtension")
    storage_class: int = Field(0, alias="StorageClass")
    client_network_mode: str = Field("", alias="ClientNetWorkMode")
    client_idc_mode: str = Field("", alias="ClientIDCMode")
    need_fallback: bool = Field(True, alias="NeedFallback")
    upload_host_prefer: str = Field("", alias="UploadHostPrefer")
    file_size: float = Field(0, alias="FileSize")


class CommitUploadInfoRequest(_ServiceModel):
    space_name: str = Field(..., alias="SpaceName")
    session_key: str = Field(..., alias="SessionKey")
    callback_args: str = Field("", alias="CallbackArgs")
    functions: str = Field("", alias="Functions")
    upload_source: str = Field("", alias="VodUploadSource")
    expire_time: str = Field("", alias="ExpireTime")


# VPC completion body
class VpcUploadPart(_ServiceModel):
    part_number: int = Field(..., alias="PartNumber")
    etag: str = Field(..., alias="ETag")


class VpcUploadPartsInfo(_ServiceModel):
    parts: List[VpcUploadPart] = Field(default_factory=list, alias="Parts")


# Caller-facing request models
class _UploadRequestBase(BaseModel):
    space_name: str = Field(..., min_length=1, description="Target space")
    file_type: str = Field("media", description="media, object or a material type")
    file_name: str = ""
    file_extension: str = ""
    callback_args: str = ""
    functions: str = ""
    storage_class: StorageClass = StorageClass.STANDARD
    chunk_size: int = Field(0, ge=0, description="Part size in bytes (0 = default)")
    upload_host_prefer: str = ""
    client_network_mode: str = ""
    client_idc_mode: str = ""
    expire_time: str = ""
    upload_source: str = ""


class UploadMediaRequest(_UploadRequestBase):
    """Upload of a local file."""

    file_path: str = Field(..., min_length=1)
    parallel_num: int = Field(0, ge=0, description="Worker count (0 = 1)")


class StreamUploadRequest(_UploadRequestBase):
    """Upload of a readable binary stream.

    ``size`` may be 0 when the length of the stream is unknown.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: Any = Field(..., description="Binary file-like object")
    size: int = Field(0, ge=0)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: Any) -> Any:
        """Content must be readable."""
        if v is not None and not hasattr(v, "read"):
            raise ValueError("content must be a readable binary stream")
        return v


# Configuration
class UploaderConfig(BaseModel):
    """Upload engine configuration."""

    api_url: str = Field(DEFAULT_API_URL, description="Control-plane base URL")
    api_key: Optional[str] = Field(None, description="Control-plane bearer token")
    api_version: str = Field("2020-08-01", description="Control-plane API version")
    timeout: int = Field(30, ge=1, le=300, description="Control-plane timeout (s)")
    vpc_timeout: int = Field(900, ge=1, description="VPC transfer timeout (s)")
    part_retry_attempts: int = Field(3, ge=1)
    host_retry_attempts: int = Field(3, ge=1)
    retry_backoff: float = Field(0.1, ge=0, description="Base retry delay (s)")
    chunk_size: int = Field(MIN_CHUNK_SIZE, ge=1)
    parallel_num: int = Field(1, ge=1)

    @classmethod
    def from_env(cls, **overrides: Any) -> "UploaderConfig":
        """Build a config from ``MEDIA_UPLOAD_*`` variables; overrides win."""
        values: Dict[str, Any] = {}
        env_map = {
            "api_url": "MEDIA_UPLOAD_API_URL",
            "api_key": "MEDIA_UPLOAD_API_KEY",
            "parallel_num": "MEDIA_UPLOAD_PARALLEL_NUM",
            "chunk_size": "MEDIA_UPLOAD_CHUNK_SIZE",
        }
        for field, variable in env_map.items():
            value = os.getenv(variable)
            if value:
                values[field] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
