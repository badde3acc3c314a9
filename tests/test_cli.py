import pytest
from click.testing import CliRunner

from media_upload.cli import main as cli_main
from media_upload.core.exceptions import UploadFailedError
from media_upload.core.models import CommitUploadInfoResponse, StorageClass


class RecordingUploader:
    """Replaces MediaUploader so CLI tests stay offline."""

    instances = []

    def __init__(self, config, progress_callback=None):
        self.config = config
        self.requests = []
        RecordingUploader.instances.append(self)

    def _respond(self, request):
        self.requests.append(request)
        if hasattr(request, "content"):
            self.stream_data = request.content.read()
        if request.space_name == "broken":
            raise UploadFailedError("transfer failed: upload failed", phase="transfer")
        return CommitUploadInfoResponse.model_validate(
            {
                "ResponseMetadata": {"RequestId": "req-commit"},
                "Result": {"Data": {"Vid": "v0123", "SpaceName": request.space_name}},
            }
        )

    upload_media = upload_object = upload_material = _respond
    upload_media_stream = upload_object_stream = upload_material_stream = _respond


@pytest.fixture
def runner(monkeypatch):
    RecordingUploader.instances = []
    monkeypatch.setattr(cli_main, "MediaUploader", RecordingUploader)
    return CliRunner()


def test_plan_prints_parts(runner):
    result = runner.invoke(cli_main.cli, ["plan", "2500", "--chunk-size", "1000"])
    assert result.exit_code == 0
    assert "1500" in result.output
    assert "2000" not in result.output


def test_plan_rejects_too_many_parts(runner):
    result = runner.invoke(cli_main.cli, ["plan", "100", "--chunk-size", "1", "--max-parts", "10"])
    assert result.exit_code == 1
    assert "parts over 10" in result.output


def test_upload_command(runner, tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"video-bytes")

    result = runner.invoke(
        cli_main.cli,
        [
            "--api-key",
            "cli-key",
            "upload",
            str(path),
            "--space",
            "demo",
            "--storage-class",
            "archive",
            "--parallel",
            "4",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "v0123" in result.output
    uploader = RecordingUploader.instances[0]
    assert uploader.config.api_key == "cli-key"
    request = uploader.requests[0]
    assert request.space_name == "demo"
    assert request.file_name == "clip.mp4"
    assert request.file_extension == ".mp4"
    assert request.storage_class == StorageClass.ARCHIVE
    assert request.parallel_num == 4


def test_upload_stream_reads_stdin(runner, monkeypatch):
    monkeypatch.setenv("MEDIA_UPLOAD_API_KEY", "env-key")
    result = runner.invoke(
        cli_main.cli, ["upload-stream", "--space", "demo", "--size", "5"], input=b"hello"
    )
    assert result.exit_code == 0, result.output
    uploader = RecordingUploader.instances[0]
    assert uploader.config.api_key == "env-key"
    request = uploader.requests[0]
    assert request.size == 5
    assert uploader.stream_data == b"hello"


def test_upload_failure_exits_with_error(runner, tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x")
    result = runner.invoke(
        cli_main.cli, ["--api-key", "k", "upload", str(path), "--space", "broken"]
    )
    assert result.exit_code == 1
    assert "Error" in result.output
