from s3_upload.services.cors_window import CorsRule, CorsWindowManager, build_window_rule, qualify_origin
from s3_upload.services.expiry_reaper import ExpiryReaper
from s3_upload.services.file_validation import (
    format_size,
    is_concrete_content_type,
    is_vector_image,
    matches_accept,
    parse_size,
)
from s3_upload.services.remote_broker import RemoteUploadBroker
from s3_upload.services.s3_storage import (
    build_storage_key,
    create_s3_client,
    ensure_s3_bucket,
    generate_object_key,
    generate_presigned_put_url,
)
from s3_upload.services.upload_issuer import (
    FileMeta,
    IssuedUpload,
    UploadCredential,
    UploadCredentialIssuer,
    build_upload_issuer,
)
from s3_upload.services.upload_session import SelectedFile, UploadSession, UploadState

__all__ = [
    "CorsRule",
    "CorsWindowManager",
    "build_window_rule",
    "qualify_origin",
    "ExpiryReaper",
    "format_size",
    "is_concrete_content_type",
    "is_vector_image",
    "matches_accept",
    "parse_size",
    "RemoteUploadBroker",
    "build_storage_key",
    "create_s3_client",
    "ensure_s3_bucket",
    "generate_object_key",
    "generate_presigned_put_url",
    "FileMeta",
    "IssuedUpload",
    "UploadCredential",
    "UploadCredentialIssuer",
    "build_upload_issuer",
    "SelectedFile",
    "UploadSession",
    "UploadState",
]
