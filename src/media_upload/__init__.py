"""
Media Upload - client-side upload engine for a media service.

This package provides:
- Single-request and concurrent multipart uploads through the storage gateway
- Pre-signed URL uploads inside a private network, verified by CRC-64
- Host failover across the candidate addresses handed out by the control plane
- CLI tool for uploading files and streams
"""

__version__ = "1.0.0"

from .core.exceptions import (
    ConfigurationError,
    ControlPlaneError,
    IntegrityError,
    PartCountMismatchError,
    PlanningError,
    TooManyPartsError,
    TransferError,
    UploadEngineError,
    UploadFailedError,
    ValidationError,
)
from .core.models import (
    MAX_PARTS,
    MIN_CHUNK_SIZE,
    STREAM_MIN_CHUNK_SIZE,
    StorageClass,
    StreamUploadRequest,
    UploaderConfig,
    UploadMediaRequest,
    UploadTarget,
)
from .core.planner import build_merge_body, plan_parts
from .core.uploader import MediaUploader, upload_file, upload_stream

__all__ = [
    # Core classes
    "MediaUploader",
    "UploaderConfig",
    "UploadMediaRequest",
    "StreamUploadRequest",
    "UploadTarget",
    "StorageClass",
    # Exceptions
    "UploadEngineError",
    "ConfigurationError",
    "ValidationError",
    "PlanningError",
    "TooManyPartsError",
    "PartCountMismatchError",
    "TransferError",
    "IntegrityError",
    "ControlPlaneError",
    "UploadFailedError",
    # Planning helpers
    "plan_parts",
    "build_merge_body",
    "MAX_PARTS",
    "MIN_CHUNK_SIZE",
    "STREAM_MIN_CHUNK_SIZE",
    # Convenience functions
    "upload_file",
    "upload_stream",
    # Metadata
    "__version__",
]
