import asyncio

import httpx
import pytest

from s3_upload.errors import (
    KeyUnavailableError,
    UnsupportedFileType,
    UploadTransportError,
    UploadValidationError,
)
from s3_upload.services.expiry_reaper import ExpiryReaper
from s3_upload.services.upload_issuer import UploadCredentialIssuer
from s3_upload.services.upload_session import SelectedFile, UploadSession, UploadState


def _storage_client(status_code: int = 200, seen: list | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_oversized_file_fails_validation_without_requesting_credential(s3_client, issuer):
    session = UploadSession(issuer, "bucket", "localhost:3000", size_limit="1MB", http_client=_storage_client())
    file = SelectedFile(name="big.png", size=2 * 1024 * 1024, mime_type="image/png")

    with pytest.raises(UploadValidationError) as exc_info:
        await session.upload(file)

    assert "too big (2MB) - max 1MB allowed" in str(exc_info.value)
    assert session.state == UploadState.FAILED
    assert session.error is exc_info.value
    assert s3_client.calls == []


@pytest.mark.asyncio
async def test_accept_mismatch_fails_validation(s3_client, issuer):
    session = UploadSession(issuer, "bucket", "localhost:3000", accept="image/*", http_client=_storage_client())

    with pytest.raises(UploadValidationError, match=r"Only image/\* files are accepted"):
        await session.upload(SelectedFile.from_bytes("notes.txt", b"hi", "text/plain"))

    assert s3_client.calls == []


@pytest.mark.asyncio
async def test_svg_is_rejected_on_the_client(s3_client, issuer):
    session = UploadSession(issuer, "bucket", "localhost:3000", http_client=_storage_client())

    with pytest.raises(UnsupportedFileType):
        await session.upload(SelectedFile.from_bytes("logo.svg", b"<svg/>", "image/svg+xml"))

    assert session.state == UploadState.FAILED
    assert s3_client.calls == []


@pytest.mark.asyncio
async def test_png_upload_reaches_succeeded_and_calls_back(s3_client, windows, reaper, issuer):
    completed: list[tuple[str, SelectedFile]] = []
    seen: list[httpx.Request] = []
    session = UploadSession(
        issuer,
        "bucket",
        "localhost:3000",
        accept="image/*",
        on_upload_complete=lambda key, file: completed.append((key, file)),
        http_client=_storage_client(200, seen),
    )
    file = SelectedFile.from_bytes("cat.png", b"\x89PNG....", "image/png")

    key = await session.upload(file)

    assert session.state == UploadState.SUCCEEDED
    assert session.key == key
    assert key.endswith("-cat.png")
    assert completed == [(key, file)]

    put = seen[0]
    assert put.method == "PUT"
    assert str(put.url) == session.credential.url
    assert put.headers["content-type"] == "image/png"
    assert put.headers["content-length"] == str(file.size)
    assert put.content == file.content

    # Success path closes the window and cancels the reap right away.
    assert "bucket" not in s3_client.cors
    assert windows.pending_sessions("bucket") == []
    assert reaper.pending() == []


@pytest.mark.asyncio
async def test_forbidden_put_fails_and_reaper_still_removes_rule(s3_client, windows):
    reaper = ExpiryReaper(windows, delay_seconds=0.05)
    issuer = UploadCredentialIssuer(client=s3_client, windows=windows, reaper=reaper, expires_in_sec=0)
    session = UploadSession(issuer, "bucket", "app.example.com", http_client=_storage_client(403))

    with pytest.raises(UploadTransportError) as exc_info:
        await session.upload(SelectedFile.from_bytes("cat.png", b"data", "image/png"))

    assert exc_info.value.status_code == 403
    assert session.state == UploadState.FAILED

    await asyncio.sleep(0.3)

    assert "bucket" not in s3_client.cors
    assert windows.pending_sessions("bucket") == []


@pytest.mark.asyncio
async def test_network_failure_is_a_transport_error(issuer):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    session = UploadSession(issuer, "bucket", "localhost:3000", http_client=client)

    with pytest.raises(UploadTransportError) as exc_info:
        await session.upload(SelectedFile.from_bytes("a.txt", b"a", "text/plain"))

    assert exc_info.value.status_code is None
    await issuer.shutdown()


@pytest.mark.asyncio
async def test_generic_type_is_sent_without_content_type(issuer):
    seen: list[httpx.Request] = []
    session = UploadSession(issuer, "bucket", "localhost:3000", http_client=_storage_client(200, seen))

    await session.upload(SelectedFile.from_bytes("blob", b"abc", ""))

    assert "content-type" not in seen[0].headers
    assert seen[0].headers["content-length"] == "3"


@pytest.mark.asyncio
async def test_missing_key_fails_finalization(issuer):
    class _ForgetfulBroker:
        async def issue(self, file, bucket, origin_host):
            return await issuer.issue(file, bucket, origin_host)

        async def last_issued_key(self, session_id):
            return None

        async def confirm_and_cleanup(self, bucket, session_id):
            return await issuer.confirm_and_cleanup(bucket, session_id)

    session = UploadSession(_ForgetfulBroker(), "bucket", "localhost:3000", http_client=_storage_client())

    with pytest.raises(KeyUnavailableError):
        await session.upload(SelectedFile.from_bytes("a.txt", b"a", "text/plain"))

    assert session.state == UploadState.FAILED
    await issuer.shutdown()


def test_session_starts_idle(issuer):
    session = UploadSession(issuer, "bucket", "localhost:3000")

    assert session.state == UploadState.IDLE
    assert session.is_pending is False
