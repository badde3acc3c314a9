import pytest
import requests
from conftest import FakeResponse, FakeSession, apply_body

from media_upload.core.control_plane import ControlPlaneClient
from media_upload.core.exceptions import ConfigurationError, ControlPlaneError
from media_upload.core.models import (
    ApplyUploadInfoRequest,
    CommitUploadInfoRequest,
    UploaderConfig,
)


def make_client(handler, **config):
    session = FakeSession(handler)
    values = {"api_key": "secret", "api_url": "https://api.example.com/"}
    values.update(config)
    return ControlPlaneClient(UploaderConfig(**values), session), session


def test_requires_api_key():
    with pytest.raises(ConfigurationError):
        ControlPlaneClient(UploaderConfig(api_key=None), FakeSession())


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("MEDIA_UPLOAD_API_KEY", "from-env")
    monkeypatch.setenv("MEDIA_UPLOAD_PARALLEL_NUM", "4")
    session = FakeSession()
    client = ControlPlaneClient(session=session)
    assert client.config.parallel_num == 4
    assert session.headers["Authorization"] == "Bearer from-env"


def test_apply_upload_info():
    client, session = make_client(lambda call: FakeResponse(200, apply_body()))
    response = client.apply_upload_info(
        ApplyUploadInfoRequest(space_name="demo", file_type="media", file_size=1024)
    )

    call = session.calls[0]
    assert call.method == "GET"
    assert call.url == "https://api.example.com/"
    assert call.params["Action"] == "ApplyUploadInfo"
    assert call.params["Version"] == "2020-08-01"
    assert call.params["SpaceName"] == "demo"
    assert call.params["FileSize"] == 1024
    assert "FileName" not in call.params
    assert call.timeout == 30

    assert response.response_metadata.request_id == "req-apply"
    address = response.result.data.upload_address
    assert address.upload_hosts == ["primary.example.com"]
    assert address.store_infos[0].store_uri == "obj/primary"


def test_commit_upload_info():
    body = {
        "ResponseMetadata": {"RequestId": "req-commit"},
        "Result": {"Data": {"Vid": "v0123", "Mid": "m1"}},
    }
    client, session = make_client(lambda call: FakeResponse(200, body))
    response = client.commit_upload_info(
        CommitUploadInfoRequest(space_name="demo", session_key="sk", callback_args="cb")
    )
    assert session.calls[0].params["SessionKey"] == "sk"
    assert session.calls[0].params["CallbackArgs"] == "cb"
    assert response.result.data.vid == "v0123"


def test_service_error_raises_with_request_id():
    body = {
        "ResponseMetadata": {
            "RequestId": "req-bad",
            "Error": {"Code": "InvalidParameter", "Message": "SpaceName not found"},
        }
    }
    client, _ = make_client(lambda call: FakeResponse(400, body))
    with pytest.raises(ControlPlaneError) as exc_info:
        client.apply_upload_info(ApplyUploadInfoRequest(space_name="missing"))
    assert exc_info.value.request_id == "req-bad"
    assert "SpaceName not found" in str(exc_info.value)


def test_error_code_zero_is_success():
    body = apply_body()
    body["ResponseMetadata"]["Error"] = {"Code": "0", "Message": ""}
    client, _ = make_client(lambda call: FakeResponse(200, body))
    client.apply_upload_info(ApplyUploadInfoRequest(space_name="demo"))


def test_network_failure():
    def refuse(call):
        raise requests.exceptions.ConnectionError("no route")

    client, _ = make_client(refuse)
    with pytest.raises(ControlPlaneError):
        client.commit_upload_info(CommitUploadInfoRequest(space_name="demo", session_key="sk"))


def test_non_json_answer():
    client, _ = make_client(lambda call: FakeResponse(502, None, text="bad gateway"))
    with pytest.raises(ControlPlaneError) as exc_info:
        client.apply_upload_info(ApplyUploadInfoRequest(space_name="demo"))
    assert exc_info.value.status_code == 502
