from datetime import datetime

from pydantic import BaseModel, Field


class S3PresignUploadRequest(BaseModel):
    filename: str = Field(min_length=1)
    content_type: str = Field(default="")
    size_bytes: int = Field(ge=0)
    bucket: str | None = Field(default=None, min_length=1)
    origin_host: str | None = Field(default=None, min_length=1)


class S3PresignUploadResponse(BaseModel):
    session_id: str
    bucket: str
    key: str
    storage_key: str
    upload_url: str
    upload_method: str = "PUT"
    upload_headers: dict[str, str]
    signed_headers: list[str]
    expires_in_sec: int
    expires_at: datetime


class S3UploadKeyResponse(BaseModel):
    session_id: str
    key: str


class S3UploadCompleteRequest(BaseModel):
    bucket: str | None = Field(default=None, min_length=1)


class S3UploadCompleteResponse(BaseModel):
    session_id: str
    key: str | None
    window_closed: bool
