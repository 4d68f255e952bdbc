import copy

import pytest
from botocore.exceptions import ClientError

from s3_upload.services.cors_window import CorsWindowManager
from s3_upload.services.expiry_reaper import ExpiryReaper
from s3_upload.services.upload_issuer import UploadCredentialIssuer


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client's CORS and presign calls."""

    def __init__(self, cors_rules: dict[str, list[dict]] | None = None) -> None:
        self.cors: dict[str, list[dict]] = copy.deepcopy(cors_rules or {})
        self.calls: list[tuple[str, str]] = []
        self.presign_calls: list[dict] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)

    def get_bucket_cors(self, *, Bucket: str) -> dict:
        self.calls.append(("get_bucket_cors", Bucket))
        self._maybe_fail("GetBucketCors")
        if Bucket not in self.cors:
            raise ClientError(
                {"Error": {"Code": "NoSuchCORSConfiguration", "Message": "The CORS configuration does not exist"}},
                "GetBucketCors",
            )
        return {"CORSRules": copy.deepcopy(self.cors[Bucket])}

    def put_bucket_cors(self, *, Bucket: str, CORSConfiguration: dict) -> dict:
        self.calls.append(("put_bucket_cors", Bucket))
        self._maybe_fail("PutBucketCors")
        rules = CORSConfiguration["CORSRules"]
        assert rules, "S3 rejects an empty CORSRules list"
        self.cors[Bucket] = copy.deepcopy(rules)
        return {}

    def delete_bucket_cors(self, *, Bucket: str) -> dict:
        self.calls.append(("delete_bucket_cors", Bucket))
        self._maybe_fail("DeleteBucketCors")
        self.cors.pop(Bucket, None)
        return {}

    def generate_presigned_url(self, operation: str, Params: dict, ExpiresIn: int, HttpMethod: str) -> str:
        self.calls.append(("generate_presigned_url", Params["Bucket"]))
        self._maybe_fail("GeneratePresignedUrl")
        self.presign_calls.append(
            {"operation": operation, "params": dict(Params), "expires_in": ExpiresIn, "method": HttpMethod}
        )
        return f"https://{Params['Bucket']}.s3.example.com/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def writes(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in {"put_bucket_cors", "delete_bucket_cors"}]


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def windows(s3_client) -> CorsWindowManager:
    return CorsWindowManager(s3_client)


@pytest.fixture
def reaper(windows) -> ExpiryReaper:
    return ExpiryReaper(windows, delay_seconds=20)


@pytest.fixture
def issuer(s3_client, windows, reaper) -> UploadCredentialIssuer:
    return UploadCredentialIssuer(client=s3_client, windows=windows, reaper=reaper, expires_in_sec=10)


@pytest.fixture
def make_s3_client():
    return FakeS3Client
