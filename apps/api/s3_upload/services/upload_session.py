"""Client-side upload flow: validate, request a credential, PUT, confirm."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import httpx

from s3_upload.errors import (
    KeyUnavailableError,
    UnsupportedFileType,
    UploadTransportError,
    UploadValidationError,
)
from s3_upload.services.file_validation import (
    format_size,
    is_concrete_content_type,
    is_vector_image,
    matches_accept,
    parse_size,
)
from s3_upload.services.upload_issuer import FileMeta, UploadCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectedFile(FileMeta):
    content: bytes = b""

    @classmethod
    def from_bytes(cls, name: str, content: bytes, mime_type: str = "") -> SelectedFile:
        return cls(name=name, size=len(content), mime_type=mime_type, content=content)


class UploadState(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    REQUESTING = "requesting"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadBroker(Protocol):
    async def issue(self, file: FileMeta, bucket: str, origin_host: str) -> UploadCredential: ...

    async def last_issued_key(self, session_id: str) -> str | None: ...

    async def confirm_and_cleanup(self, bucket: str, session_id: str) -> bool: ...


class UploadSession:
    """One file upload from selection to confirmation.

    ``broker`` is either an in-process ``UploadCredentialIssuer`` or a
    ``RemoteUploadBroker``. Errors move the session to ``FAILED`` and are
    re-raised to the caller.
    """

    def __init__(
        self,
        broker: UploadBroker,
        bucket: str,
        origin_host: str,
        *,
        accept: str = "*/*",
        size_limit: str | int = "1MB",
        on_upload_complete: Callable[[str, SelectedFile], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._broker = broker
        self._bucket = bucket
        self._origin_host = origin_host
        self._accept = accept
        self._size_limit_label = size_limit if isinstance(size_limit, str) else format_size(size_limit)
        self._size_limit = parse_size(size_limit)
        self._on_upload_complete = on_upload_complete
        self._http_client = http_client

        self.state = UploadState.IDLE
        self.key: str | None = None
        self.error: Exception | None = None
        self.credential: UploadCredential | None = None

    @property
    def is_pending(self) -> bool:
        return self.state in {UploadState.REQUESTING, UploadState.UPLOADING, UploadState.FINALIZING}

    async def upload(self, file: SelectedFile) -> str:
        self.key = None
        self.error = None
        self.credential = None
        try:
            self.state = UploadState.VALIDATING
            self.validate(file)

            self.state = UploadState.REQUESTING
            credential = await self._broker.issue(file, self._bucket, self._origin_host)
            self.credential = credential

            self.state = UploadState.UPLOADING
            await self._put(credential, file)

            self.state = UploadState.FINALIZING
            key = await self._broker.last_issued_key(credential.session_id)
            if key is None:
                raise KeyUnavailableError(f"No key issued for session {credential.session_id}")
            await self._broker.confirm_and_cleanup(self._bucket, credential.session_id)

            self.key = key
            if self._on_upload_complete is not None:
                self._on_upload_complete(key, file)
            self.state = UploadState.SUCCEEDED
            return key
        except Exception as exc:
            logger.error("Upload of %r failed in state %s: %s", file.name, self.state.value, exc)
            self.error = exc
            self.state = UploadState.FAILED
            raise

    def validate(self, file: SelectedFile) -> None:
        if is_vector_image(file.mime_type, file.name):
            raise UnsupportedFileType(file.mime_type)
        if not matches_accept(self._accept, filename=file.name, mime_type=file.mime_type):
            raise UploadValidationError(f"Only {self._accept} files are accepted")
        if file.size > self._size_limit:
            raise UploadValidationError(
                f'File "{file.name}" is too big ({format_size(file.size)}) - max {self._size_limit_label} allowed'
            )

    async def _put(self, credential: UploadCredential, file: SelectedFile) -> None:
        headers = {"Content-Length": str(file.size)}
        if is_concrete_content_type(file.mime_type):
            headers["Content-Type"] = file.mime_type

        client = self._http_client or httpx.AsyncClient(timeout=60.0)
        try:
            response = await client.request(credential.method, credential.url, content=file.content, headers=headers)
        except httpx.RequestError as exc:
            raise UploadTransportError(f"Failed to upload file to S3: {exc}") from exc
        finally:
            if self._http_client is None:
                await client.aclose()

        if not response.is_success:
            raise UploadTransportError(
                f"Failed to upload file to S3: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
