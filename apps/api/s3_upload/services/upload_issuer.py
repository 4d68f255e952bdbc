from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from s3_upload.config import (
    get_cors_development_hosts,
    get_cors_reap_delay_sec,
    get_cors_window_max_age_sec,
    get_upload_url_expires_in_sec,
)
from s3_upload.errors import StoreCommunicationError, UnsupportedFileType
from s3_upload.services.cors_window import CorsWindowManager
from s3_upload.services.expiry_reaper import ExpiryReaper
from s3_upload.services.file_validation import is_concrete_content_type, is_vector_image
from s3_upload.services.s3_storage import (
    create_s3_client,
    generate_object_key,
    generate_presigned_put_url,
    signed_header_names,
)

logger = logging.getLogger(__name__)

DEFAULT_URL_EXPIRES_IN_SEC = 10


@dataclass(frozen=True)
class FileMeta:
    name: str
    size: int
    mime_type: str = ""


@dataclass(frozen=True)
class UploadCredential:
    session_id: str
    bucket: str
    key: str
    url: str
    method: str
    headers: dict[str, str]
    signed_headers: list[str]
    expires_in_sec: int
    expires_at: datetime


@dataclass
class IssuedUpload:
    session_id: str
    bucket: str
    key: str
    file: FileMeta
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class UploadCredentialIssuer:
    """Issues presigned PUT URLs and keeps the matching CORS window open.

    State is per session: every :meth:`issue` call gets a fresh ``session_id``
    and the caller passes it back to :meth:`last_issued_key` and
    :meth:`confirm_and_cleanup`.
    """

    def __init__(
        self,
        *,
        client: BaseClient,
        windows: CorsWindowManager,
        reaper: ExpiryReaper,
        expires_in_sec: int = DEFAULT_URL_EXPIRES_IN_SEC,
    ) -> None:
        if reaper.delay_seconds <= expires_in_sec:
            raise ValueError(
                f"CORS reap delay ({reaper.delay_seconds}s) must exceed the upload URL expiry ({expires_in_sec}s)"
            )
        self._client = client
        self._windows = windows
        self._reaper = reaper
        self._expires_in_sec = expires_in_sec
        self._sessions: dict[str, IssuedUpload] = {}

    @property
    def expires_in_sec(self) -> int:
        return self._expires_in_sec

    async def issue(self, file: FileMeta, bucket: str, origin_host: str) -> UploadCredential:
        if is_vector_image(file.mime_type, file.name):
            raise UnsupportedFileType(file.mime_type)

        self._prune_sessions()
        session_id = uuid4().hex
        await self._windows.open_window(bucket, origin_host, session_id=session_id)

        key = generate_object_key(file.name)
        self._reaper.schedule(bucket, session_id)

        content_type = file.mime_type if is_concrete_content_type(file.mime_type) else None
        try:
            url = await asyncio.to_thread(
                generate_presigned_put_url,
                client=self._client,
                bucket=bucket,
                key=key,
                content_length=file.size,
                content_type=content_type,
                expires_in=self._expires_in_sec,
            )
        except (BotoCoreError, ClientError) as exc:
            await self._cleanup(bucket, session_id)
            raise StoreCommunicationError(f"Failed to presign upload for {key}: {exc}") from exc

        self._sessions[session_id] = IssuedUpload(session_id=session_id, bucket=bucket, key=key, file=file)
        logger.info(
            "Issued upload credential: session_id=%s, bucket=%s, key=%s, size=%s",
            session_id,
            bucket,
            key,
            file.size,
        )

        headers = {"Content-Length": str(file.size)}
        if content_type:
            headers["Content-Type"] = content_type
        return UploadCredential(
            session_id=session_id,
            bucket=bucket,
            key=key,
            url=url,
            method="PUT",
            headers=headers,
            signed_headers=signed_header_names(content_type),
            expires_in_sec=self._expires_in_sec,
            expires_at=datetime.now(UTC) + timedelta(seconds=self._expires_in_sec),
        )

    async def last_issued_key(self, session_id: str) -> str | None:
        issued = self._sessions.get(session_id)
        return issued.key if issued else None

    def get_issued(self, session_id: str) -> IssuedUpload | None:
        return self._sessions.get(session_id)

    async def confirm_and_cleanup(self, bucket: str, session_id: str) -> bool:
        """Close the session's CORS window now. Never raises on store errors.

        The window is closed on the bucket it was opened on. ``bucket`` is only
        used for sessions this issuer no longer tracks.
        """
        issued = self._sessions.get(session_id)
        session_bucket = issued.bucket if issued else self._reaper.bucket_for(session_id)
        if session_bucket and session_bucket != bucket:
            logger.warning(
                "Ignoring bucket=%s on confirm; session_id=%s was issued for bucket=%s",
                bucket,
                session_id,
                session_bucket,
            )
            bucket = session_bucket

        closed = await self._cleanup(bucket, session_id)
        self._sessions.pop(session_id, None)
        return closed

    async def shutdown(self) -> int:
        closed = await self._reaper.drain()
        if closed:
            logger.info("Closed %s pending CORS window(s) on shutdown", closed)
        return closed

    async def _cleanup(self, bucket: str, session_id: str) -> bool:
        # The reap is only cancelled once the window is really closed.
        try:
            closed = await self._windows.close_window(bucket, session_id)
        except Exception:
            logger.exception("Failed to close CORS window: bucket=%s, session_id=%s", bucket, session_id)
            if not self._reaper.is_scheduled(session_id):
                self._reaper.schedule(bucket, session_id)
            return False
        self._reaper.cancel(session_id)
        return closed

    def _prune_sessions(self) -> None:
        # Unconfirmed sessions stay readable for a while after their window is
        # reaped, so a PUT that finished late can still be finalized.
        cutoff = datetime.now(UTC) - timedelta(seconds=2 * self._reaper.delay_seconds)
        stale = [sid for sid, issued in self._sessions.items() if issued.issued_at < cutoff]
        for session_id in stale:
            del self._sessions[session_id]


def build_upload_issuer(client: BaseClient | None = None) -> UploadCredentialIssuer:
    s3_client = client or create_s3_client()
    windows = CorsWindowManager(
        s3_client,
        max_age_seconds=get_cors_window_max_age_sec(),
        development_hosts=get_cors_development_hosts(),
    )
    reaper = ExpiryReaper(windows, delay_seconds=get_cors_reap_delay_sec())
    return UploadCredentialIssuer(
        client=s3_client,
        windows=windows,
        reaper=reaper,
        expires_in_sec=get_upload_url_expires_in_sec(),
    )
