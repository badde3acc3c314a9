#!/usr/bin/env python3
"""
Basic usage examples for Media Upload.

This script demonstrates the most common operations:
- Uploading a local file (single request or multipart, chosen by size)
- Uploading a stream of unknown length
- Inspecting a part plan without touching the network
- Error handling
"""

import io
import os
import sys
import tempfile

from media_upload import (
    ConfigurationError,
    MediaUploader,
    StorageClass,
    StreamUploadRequest,
    UploaderConfig,
    UploadFailedError,
    UploadMediaRequest,
    plan_parts,
)


def show_plan():
    """Print how a 100 MB file would be split with the default chunk size."""
    print("\n1. Part plan for a 100 MB file...")
    for part in plan_parts(100 * 1024 * 1024, 20 * 1024 * 1024):
        print(f"   Part {part.number}: offset {part.offset}, {part.length} bytes")


def upload_local_file(uploader, space_name):
    print("\n2. Uploading a local file...")
    with tempfile.NamedTemporaryFile(suffix=".mp4", delete=False) as f:
        f.write(os.urandom(1024 * 1024))
        local_path = f.name

    def progress(bytes_uploaded, total, speed_mbps):
        print(f"   {bytes_uploaded}/{total} bytes ({speed_mbps:.1f} MB/s)")

    uploader.progress_callback = progress
    try:
        response = uploader.upload_media(
            UploadMediaRequest(
                file_path=local_path,
                space_name=space_name,
                file_name="sample.mp4",
                file_extension=".mp4",
                storage_class=StorageClass.STANDARD,
                parallel_num=4,
            )
        )
        data = response.result.data if response.result else None
        print(f"   Uploaded, vid: {data.vid if data else 'N/A'}")
    except UploadFailedError as e:
        print(f"   Upload failed during {e.phase} (request id: {e.request_id}): {e}")
    finally:
        os.unlink(local_path)


def upload_from_stream(uploader, space_name):
    print("\n3. Uploading a stream of unknown length...")
    stream = io.BytesIO(b"generated content " * 1000)
    try:
        response = uploader.upload_object_stream(
            StreamUploadRequest(content=stream, size=0, space_name=space_name, file_name="notes.txt")
        )
        print(f"   Committed, request id: {response.response_metadata.request_id}")
    except UploadFailedError as e:
        print(f"   Upload failed during {e.phase}: {e}")


def main():
    """Demonstrate basic Media Upload operations."""
    show_plan()

    space_name = os.getenv("MEDIA_UPLOAD_SPACE")
    if not space_name:
        print("\nSet MEDIA_UPLOAD_SPACE (and MEDIA_UPLOAD_API_KEY) to run the uploads.")
        return

    # Requires MEDIA_UPLOAD_API_KEY environment variable
    try:
        uploader = MediaUploader(UploaderConfig.from_env())
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    upload_local_file(uploader, space_name)
    upload_from_stream(uploader, space_name)


if __name__ == "__main__":
    main()
