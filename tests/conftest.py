import json
import os
import threading
from urllib.parse import parse_qs, urlsplit

import pytest
from requests.structures import CaseInsensitiveDict

from media_upload.core.models import (
    ApplyUploadInfoResponse,
    CommitUploadInfoResponse,
    UploaderConfig,
)


class FakeResponse:
    """Just enough of ``requests.Response`` for the upload engine."""

    def __init__(self, status_code=200, json_body=None, headers=None, text=None):
        self.status_code = status_code
        self._json = json_body
        self.headers = CaseInsensitiveDict(headers or {})
        if text is None:
            text = json.dumps(json_body) if json_body is not None else ""
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class Call:
    def __init__(self, method, url, headers, body, params, timeout):
        self.method = method
        self.url = url
        self.headers = CaseInsensitiveDict(headers or {})
        self.body = body
        self.params = params or {}
        self.timeout = timeout

    @property
    def query(self):
        return parse_qs(urlsplit(self.url).query, keep_blank_values=True)

    @property
    def host(self):
        return urlsplit(self.url).netloc


def _consume(data):
    # Bodies are read eagerly so tests can inspect what went over the wire.
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    if hasattr(data, "read"):
        return data.read()
    return b"".join(data)


class FakeSession:
    """Stands in for ``requests.Session``; every request goes to ``handler``."""

    def __init__(self, handler=None):
        self.headers = {}
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, headers=None, data=None, params=None, timeout=None, **kwargs):
        call = Call(method, url, headers, _consume(data), params, timeout)
        with self._lock:
            self.calls.append(call)
        return self.handler(call)


def gateway_ok(payload=None, request_id="log-1"):
    return FakeResponse(
        200, {"success": 0, "payload": payload or {}}, headers={"X-Tt-Logid": request_id}
    )


def gateway_error(code=500, error_code=0, message="internal error", status=200):
    body = {
        "success": -1,
        "error": {"code": code, "errorCode": error_code, "message": message},
    }
    return FakeResponse(status, body, headers={"X-Tt-Logid": "log-err"})


class FakeGateway:
    """Handler emulating the gateway's whole-object and multipart protocol."""

    def __init__(self, content_type="video/mp4", fail=None):
        self.content_type = content_type
        self.fail = fail
        self.parts = {}
        self.merges = []
        self.puts = []
        self.inits = []
        self._lock = threading.Lock()

    def __call__(self, call):
        if self.fail is not None:
            response = self.fail(call)
            if response is not None:
                return response
        query = call.query
        if "uploads" in query:
            with self._lock:
                self.inits.append(call)
            return gateway_ok({"uploadID": "upload-1"})
        if "partNumber" in query:
            number = int(query["partNumber"][0])
            with self._lock:
                self.parts[number] = call.body
            meta = {"ObjectContentType": self.content_type} if number == 1 else {}
            return gateway_ok({"hash": "h", "meta": meta})
        if "uploadID" in query:
            with self._lock:
                self.merges.append(call)
            return gateway_ok({})
        with self._lock:
            self.puts.append(call)
        return gateway_ok({})

    @property
    def assembled(self):
        return b"".join(self.parts[n] for n in sorted(self.parts))


def upload_address(hosts, uri):
    return {
        "UploadHosts": list(hosts),
        "StoreInfos": [{"StoreUri": uri, "Auth": f"auth-{uri}"}],
        "SessionKey": f"session-{uri}",
    }


def apply_body(main=None, backup=None, fallback=None, primary=None, vpc=None):
    """ApplyUploadInfo answer; ``main``/``backup``/``fallback`` are lists of (hosts, uri)."""
    data = {"UploadAddress": upload_address(*(primary or (["primary.example.com"], "obj/primary")))}
    if main or backup or fallback:
        data["CandidateUploadAddresses"] = {
            "MainUploadAddresses": [upload_address(h, u) for h, u in main or []],
            "BackupUploadAddresses": [upload_address(h, u) for h, u in backup or []],
            "FallbackUploadAddresses": [upload_address(h, u) for h, u in fallback or []],
        }
    if vpc is not None:
        data["VpcTosUploadAddress"] = vpc
    return {
        "ResponseMetadata": {"RequestId": "req-apply", "Action": "ApplyUploadInfo"},
        "Result": {"Data": data},
    }


class FakeControlPlane:
    """In-memory control plane recording apply and commit requests."""

    def __init__(self, apply=None, apply_error=None, commit_error=None):
        self.apply_response = apply or apply_body()
        self.apply_error = apply_error
        self.commit_error = commit_error
        self.apply_requests = []
        self.commit_requests = []

    def apply_upload_info(self, request):
        self.apply_requests.append(request)
        if self.apply_error is not None:
            raise self.apply_error
        return ApplyUploadInfoResponse.model_validate(self.apply_response)

    def commit_upload_info(self, request):
        self.commit_requests.append(request)
        if self.commit_error is not None:
            raise self.commit_error
        return CommitUploadInfoResponse.model_validate(
            {
                "ResponseMetadata": {"RequestId": "req-commit"},
                "Result": {
                    "RequestId": "req-commit",
                    "Data": {"Vid": "v0123", "SpaceName": request.space_name},
                },
            }
        )


@pytest.fixture
def records():
    return []


@pytest.fixture
def sink(records):
    return records.append


@pytest.fixture
def config():
    return UploaderConfig(api_key="test-key", retry_backoff=0)


@pytest.fixture
def make_file(tmp_path):
    """Factory writing a file of ``size`` pseudo-random bytes."""

    def _make(size, name="video.mp4"):
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return path

    return _make


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for variable in (
        "MEDIA_UPLOAD_API_URL",
        "MEDIA_UPLOAD_API_KEY",
        "MEDIA_UPLOAD_PARALLEL_NUM",
        "MEDIA_UPLOAD_CHUNK_SIZE",
    ):
        monkeypatch.delenv(variable, raising=False)
