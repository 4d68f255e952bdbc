from __future__ import annotations

from uuid import uuid4

import boto3
from botocore.client import BaseClient
from botocore.config import Config

from s3_upload.config import (
    get_s3_access_key_id,
    get_s3_bucket,
    get_s3_endpoint_url,
    get_s3_region,
    get_s3_secret_access_key,
    get_s3_session_token,
)


def create_s3_client() -> BaseClient:
    access_key = get_s3_access_key_id()
    secret_key = get_s3_secret_access_key()
    region = get_s3_region()
    endpoint_url = get_s3_endpoint_url() or f"https://s3.{region}.amazonaws.com"
    if not access_key or not secret_key:
        raise ValueError("S3 credentials missing: set S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY")

    return boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        aws_session_token=get_s3_session_token(),
        endpoint_url=endpoint_url,
        # Query-string SigV4 is required to sign content-length.
        config=Config(signature_version="s3v4"),
    )


def ensure_s3_bucket(bucket: str | None = None) -> str:
    resolved = bucket or get_s3_bucket()
    if not resolved:
        raise ValueError("S3_BUCKET is not set")
    return resolved


def split_filename(filename: str) -> tuple[str, str | None]:
    if "." not in filename:
        return filename, None
    stem, extension = filename.rsplit(".", 1)
    return stem, extension


def generate_object_key(original_name: str) -> str:
    stem, extension = split_filename(original_name)
    key = f"{uuid4().hex}-{stem}"
    if extension is None:
        return key
    return f"{key}.{extension}"


def build_storage_key(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def signed_header_names(content_type: str | None) -> list[str]:
    headers = ["content-length"]
    if content_type:
        headers.append("content-type")
    return headers


def generate_presigned_put_url(
    *,
    client: BaseClient,
    bucket: str,
    key: str,
    content_length: int,
    content_type: str | None = None,
    expires_in: int = 10,
) -> str:
    """Presign a single-object PUT.

    ``Content-Length`` is always part of the signature; ``Content-Type`` only
    when ``content_type`` is given, so the client must send exactly those
    values.
    """
    params: dict = {
        "Bucket": bucket,
        "Key": key,
        "ContentLength": content_length,
    }
    if content_type:
        params["ContentType"] = content_type

    return client.generate_presigned_url(
        "put_object",
        Params=params,
        ExpiresIn=expires_in,
        HttpMethod="PUT",
    )
