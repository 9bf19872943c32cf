"""Request signing for authenticated (AWS-hosted) search clusters."""

import logging
from typing import Any, Protocol

import boto3
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest

logger = logging.getLogger(__name__)

SIGNED_HEADERS = ("Authorization", "X-Amz-Date", "X-Amz-Security-Token")


class RequestSigner(Protocol):
    def __call__(self, method: str, url: str, headers: dict[str, str], body: bytes | None) -> dict[str, str]: ...


def noop_signer(method: str, url: str, headers: dict[str, str], body: bytes | None) -> dict[str, str]:
    """Signer for local and unauthenticated clusters."""
    return dict(headers)


class AWSRequestSigner:
    """SigV4-sign requests for Amazon OpenSearch Service.

    Credentials come from the default boto3 session unless given explicitly.
    """

    def __init__(self, region: str, service: str = "es", credentials: Any = None) -> None:
        self.region = region
        self.service = service
        self._credentials = credentials

    @property
    def credentials(self) -> Any:
        if self._credentials is None:
            self._credentials = boto3.Session().get_credentials()
            if self._credentials is None:
                raise RuntimeError("No AWS credentials found for request signing")
        return self._credentials

    def __call__(self, method: str, url: str, headers: dict[str, str], body: bytes | None) -> dict[str, str]:
        # The Host header is derived from the URL while signing
        headers = {k: v for k, v in headers.items() if k.lower() != "host"}
        request = AWSRequest(method=method, url=url, data=body, headers=headers)
        credentials = self.credentials
        if hasattr(credentials, "get_frozen_credentials"):
            credentials = credentials.get_frozen_credentials()
        SigV4Auth(credentials, self.service, self.region).add_auth(request)
        for name in SIGNED_HEADERS:
            if name in request.headers:
                headers[name] = request.headers[name]
        return headers
