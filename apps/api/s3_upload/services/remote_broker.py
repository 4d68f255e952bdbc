from __future__ import annotations

from datetime import datetime

import httpx

from s3_upload.errors import StoreCommunicationError, UnsupportedFileType, UploadValidationError
from s3_upload.services.upload_issuer import FileMeta, UploadCredential


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and payload.get("detail"):
        return str(payload["detail"])
    return response.text


class RemoteUploadBroker:
    """Upload broker reached through the ``/storage/s3`` HTTP API."""

    def __init__(self, base_url: str, *, http_client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._base_url}/storage/s3{path}"
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise StoreCommunicationError(f"Upload API request failed: {exc}") from exc

    async def issue(self, file: FileMeta, bucket: str, origin_host: str) -> UploadCredential:
        response = await self._request(
            "POST",
            "/presign-upload",
            json={
                "filename": file.name,
                "content_type": file.mime_type,
                "size_bytes": file.size,
                "bucket": bucket,
                "origin_host": origin_host,
            },
        )
        if response.status_code == 415:
            raise UnsupportedFileType(file.mime_type, _error_detail(response))
        if response.status_code == 400:
            raise UploadValidationError(_error_detail(response))
        if not response.is_success:
            raise StoreCommunicationError(
                f"Upload API returned {response.status_code}: {_error_detail(response)}"
            )

        data = response.json()
        return UploadCredential(
            session_id=data["session_id"],
            bucket=data["bucket"],
            key=data["key"],
            url=data["upload_url"],
            method=data.get("upload_method") or "PUT",
            headers=dict(data.get("upload_headers") or {}),
            signed_headers=list(data.get("signed_headers") or []),
            expires_in_sec=int(data["expires_in_sec"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    async def last_issued_key(self, session_id: str) -> str | None:
        response = await self._request("GET", f"/uploads/{session_id}/key")
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise StoreCommunicationError(
                f"Upload API returned {response.status_code}: {_error_detail(response)}"
            )
        return response.json()["key"]

    async def confirm_and_cleanup(self, bucket: str, session_id: str) -> bool:
        response = await self._request("POST", f"/uploads/{session_id}/complete", json={"bucket": bucket})
        if not response.is_success:
            raise StoreCommunicationError(
                f"Upload API returned {response.status_code}: {_error_detail(response)}"
            )
        return bool(response.json().get("window_closed"))
