"""Control-plane API client: apply for upload targets and commit uploads."""

import logging
from typing import Any, Dict, Optional, Protocol

import requests
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError, ControlPlaneError
from .models import (
    ApplyUploadInfoRequest,
    ApplyUploadInfoResponse,
    CommitUploadInfoRequest,
    CommitUploadInfoResponse,
    UploaderConfig,
)

logger = logging.getLogger(__name__)


class ControlPlane(Protocol):
    """What the upload facade needs from the control plane."""

    def apply_upload_info(self, request: ApplyUploadInfoRequest) -> ApplyUploadInfoResponse:
        ...

    def commit_upload_info(self, request: CommitUploadInfoRequest) -> CommitUploadInfoResponse:
        ...


class ControlPlaneClient:
    """Client for the media service's upload control-plane actions."""

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the control-plane client.

        Args:
            config: Engine configuration. Defaults to ``UploaderConfig.from_env()``.
            session: HTTP session to use (a new one if omitted)
        """
        self.config = config or UploaderConfig.from_env()
        if not self.config.api_key:
            raise ConfigurationError(
                "Control-plane API key required. Set MEDIA_UPLOAD_API_KEY environment "
                "variable or pass api_key in the configuration."
            )

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
        })

    def _make_request(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Call one control-plane action and return the decoded JSON body."""
        query = {"Action": action, "Version": self.config.api_version}
        query.update({k: v for k, v in params.items() if v not in (None, "")})

        try:
            response = self.session.request(
                "GET", self.config.api_url, params=query, timeout=self.config.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"{action} request failed: {e}")
            raise ControlPlaneError(f"{action} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"{action} returned non-JSON response: {response.text}")
            raise ControlPlaneError(
                f"{action} returned invalid response", status_code=response.status_code
            ) from e

        if not isinstance(body, dict):
            raise ControlPlaneError(
                f"{action} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _check(action: str, response: Any) -> None:
        metadata = response.response_metadata
        if metadata.failed:
            raise ControlPlaneError(
                f"{action} failed: {metadata.error.code} {metadata.error.message}",
                request_id=metadata.request_id,
            )

    def apply_upload_info(self, request: ApplyUploadInfoRequest) -> ApplyUploadInfoResponse:
        """Ask for upload hosts, object id, session key and auth."""
        body = self._make_request("ApplyUploadInfo", request.model_dump(by_alias=True))
        try:
            response = ApplyUploadInfoResponse.model_validate(body)
        except PydanticValidationError as e:
            raise ControlPlaneError(f"ApplyUploadInfo response malformed: {e}") from e
        self._check("ApplyUploadInfo", response)
        return response

    def commit_upload_info(self, request: CommitUploadInfoRequest) -> CommitUploadInfoResponse:
        """Register the uploaded object with the media registry."""
        body = self._make_request("CommitUploadInfo", request.model_dump(by_alias=True))
        try:
            response = CommitUploadInfoResponse.model_validate(body)
        except PydanticValidationError as e:
            raise ControlPlaneError(f"CommitUploadInfo response malformed: {e}") from e
        self._check("CommitUploadInfo", response)
        return response
