import random
import threading
import time

import pytest
from conftest import FakeGateway, FakeSession, gateway_error

from media_upload.core.checksum import crc32_hex
from media_upload.core.exceptions import TransferError
from media_upload.core.models import StorageClass, UploadTarget
from media_upload.core.multipart import MultipartUploader
from media_upload.core.transport import GatewayClient

CHUNK = 1024


def make_target(storage_class=StorageClass.STANDARD):
    return UploadTarget(
        hosts=["up.example.com"],
        object_id="tos-bucket/abc",
        auth_token="auth",
        storage_class=storage_class,
    )


def make_uploader(server, parallel_num=1, **kwargs):
    return MultipartUploader(
        GatewayClient(FakeSession(server)), parallel_num=parallel_num, retry_backoff=0, **kwargs
    )


def test_uploads_every_part_and_merges_in_order(make_file):
    path = make_file(CHUNK * 3 + 100)
    server = FakeGateway()

    session = make_uploader(server, parallel_num=2).upload(str(path), make_target(), CHUNK)

    assert session.upload_id == "upload-1"
    assert [p.length for p in session.parts] == [CHUNK, CHUNK, CHUNK + 100]
    assert server.assembled == path.read_bytes()
    assert len(server.merges) == 1
    expected = ",".join(
        f"{n}:{crc32_hex(server.parts[n])}" for n in sorted(server.parts)
    )
    assert server.merges[0].body == expected.encode()


def test_concurrent_workers_merge_every_part_once(make_file):
    path = make_file(CHUNK * 100)
    rng = random.Random(7)
    rng_lock = threading.Lock()

    def jitter(call):
        if "partNumber" in call.query:
            with rng_lock:
                delay = rng.uniform(0, 0.003)
            time.sleep(delay)
        return None

    server = FakeGateway(fail=jitter)
    make_uploader(server, parallel_num=8).upload(str(path), make_target(), CHUNK)

    entries = server.merges[0].body.decode().split(",")
    assert [int(e.split(":")[0]) for e in entries] == list(range(1, 101))
    assert server.assembled == path.read_bytes()


def test_first_failure_aborts_without_merge(make_file):
    path = make_file(CHUNK * 20)

    def fail_part_5(call):
        if call.query.get("partNumber") == ["5"]:
            return gateway_error(code=403, message="part 5 rejected")
        return None

    server = FakeGateway(fail=fail_part_5)
    with pytest.raises(TransferError, match="part 5 rejected"):
        make_uploader(server, parallel_num=4).upload(str(path), make_target(), CHUNK)
    assert server.merges == []


def test_part_retried_three_times(make_file):
    path = make_file(CHUNK * 2)
    attempts = []

    def flaky_part_2(call):
        if call.query.get("partNumber") == ["2"]:
            attempts.append(call)
            if len(attempts) < 3:
                return gateway_error(code=404, message="transient")
        return None

    server = FakeGateway(fail=flaky_part_2)
    make_uploader(server).upload(str(path), make_target(), CHUNK)
    assert len(attempts) == 3
    assert len(server.merges) == 1


def test_part_gives_up_after_three_attempts(make_file):
    path = make_file(CHUNK * 2)
    attempts = []

    def broken_part_2(call):
        if call.query.get("partNumber") == ["2"]:
            attempts.append(call)
            return gateway_error(code=500, message="down")
        return None

    server = FakeGateway(fail=broken_part_2)
    with pytest.raises(TransferError):
        make_uploader(server).upload(str(path), make_target(), CHUNK)
    assert len(attempts) == 3
    assert server.merges == []


def test_archive_merge_carries_part_one_content_type(make_file):
    path = make_file(CHUNK * 4)
    server = FakeGateway(content_type="video/quicktime")
    make_uploader(server, parallel_num=3).upload(
        str(path), make_target(StorageClass.ARCHIVE), CHUNK
    )
    assert server.merges[0].url.endswith("&ObjectContentType=video%2Fquicktime")


def test_progress_callback(make_file):
    path = make_file(CHUNK * 4)
    progress = []

    make_uploader(
        FakeGateway(),
        parallel_num=2,
        progress_callback=lambda done, total, speed: progress.append((done, total)),
    ).upload(str(path), make_target(), CHUNK)

    assert len(progress) == 4
    assert sorted(done for done, _ in progress)[-1] == CHUNK * 4
    assert all(total == CHUNK * 4 for _, total in progress)
