from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, HTTPException, Request, status

from s3_upload.errors import StoreCommunicationError, UnsupportedFileType
from s3_upload.schemas.storage import (
    S3PresignUploadRequest,
    S3PresignUploadResponse,
    S3UploadCompleteRequest,
    S3UploadCompleteResponse,
    S3UploadKeyResponse,
)
from s3_upload.services.s3_storage import build_storage_key, ensure_s3_bucket
from s3_upload.services.upload_issuer import FileMeta, UploadCredentialIssuer, build_upload_issuer

router = APIRouter(prefix="/storage/s3", tags=["storage"])


def get_upload_issuer(request: Request) -> UploadCredentialIssuer:
    issuer = getattr(request.app.state, "upload_issuer", None)
    if issuer is None:
        try:
            issuer = build_upload_issuer()
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Upload storage is not configured: {exc}",
            ) from exc
        request.app.state.upload_issuer = issuer
    return issuer


def _resolve_origin_host(payload: S3PresignUploadRequest, request: Request) -> str:
    if payload.origin_host:
        return payload.origin_host
    origin = request.headers.get("origin")
    if origin and origin != "null":
        netloc = urlsplit(origin).netloc
        if netloc:
            return netloc
    host = request.headers.get("host")
    if host:
        return host
    raise ValueError("origin_host is required when the request has no Origin or Host header")


@router.post("/presign-upload", response_model=S3PresignUploadResponse)
async def presign_s3_upload(
    payload: S3PresignUploadRequest,
    request: Request,
    issuer: UploadCredentialIssuer = Depends(get_upload_issuer),
) -> S3PresignUploadResponse:
    try:
        bucket = ensure_s3_bucket(payload.bucket)
        origin_host = _resolve_origin_host(payload, request)
        credential = await issuer.issue(
            FileMeta(name=payload.filename, size=payload.size_bytes, mime_type=payload.content_type),
            bucket,
            origin_host,
        )
    except UnsupportedFileType as exc:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreCommunicationError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to generate S3 presigned URL: {exc}",
        ) from exc

    return S3PresignUploadResponse(
        session_id=credential.session_id,
        bucket=credential.bucket,
        key=credential.key,
        storage_key=build_storage_key(credential.bucket, credential.key),
        upload_url=credential.url,
        upload_method=credential.method,
        upload_headers=credential.headers,
        signed_headers=credential.signed_headers,
        expires_in_sec=credential.expires_in_sec,
        expires_at=credential.expires_at,
    )


@router.get("/uploads/{session_id}/key", response_model=S3UploadKeyResponse)
async def get_upload_key(
    session_id: str,
    issuer: UploadCredentialIssuer = Depends(get_upload_issuer),
) -> S3UploadKeyResponse:
    key = await issuer.last_issued_key(session_id)
    if key is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No key issued for this session")
    return S3UploadKeyResponse(session_id=session_id, key=key)


@router.post("/uploads/{session_id}/complete", response_model=S3UploadCompleteResponse)
async def complete_s3_upload(
    session_id: str,
    payload: S3UploadCompleteRequest | None = None,
    issuer: UploadCredentialIssuer = Depends(get_upload_issuer),
) -> S3UploadCompleteResponse:
    issued = issuer.get_issued(session_id)
    try:
        bucket = (issued.bucket if issued else None) or (payload.bucket if payload else None) or ensure_s3_bucket()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    window_closed = await issuer.confirm_and_cleanup(bucket, session_id)
    return S3UploadCompleteResponse(
        session_id=session_id,
        key=issued.key if issued else None,
        window_closed=window_closed,
    )
