import os
from pathlib import Path

from dotenv import load_dotenv


_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(_ENV_PATH, override=False)


def _get_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _get_list_env(name: str, default: str) -> list[str]:
    raw = _get_env(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_s3_bucket() -> str | None:
    return _get_env("S3_BUCKET")


def get_s3_region() -> str:
    return _get_env("S3_REGION") or "ap-northeast-2"


def get_s3_access_key_id() -> str | None:
    return _get_env("S3_ACCESS_KEY_ID")


def get_s3_secret_access_key() -> str | None:
    return _get_env("S3_SECRET_ACCESS_KEY")


def get_s3_session_token() -> str | None:
    return _get_env("S3_SESSION_TOKEN")


def get_s3_endpoint_url() -> str | None:
    return _get_env("S3_ENDPOINT_URL")


def get_cors_window_max_age_sec() -> int:
    return _get_int_env("CORS_WINDOW_MAX_AGE_SEC", 3000)


def get_upload_url_expires_in_sec() -> int:
    return _get_int_env("UPLOAD_URL_EXPIRES_IN_SEC", 10)


def get_cors_reap_delay_sec() -> int:
    """Delay before an unconfirmed CORS window is closed.

    Defaults to twice the presigned URL lifetime so a slow PUT started just
    before expiry can still finish.
    """
    return _get_int_env("CORS_REAP_DELAY_SEC", 2 * get_upload_url_expires_in_sec())


def get_cors_development_hosts() -> list[str]:
    return _get_list_env("CORS_DEVELOPMENT_HOSTS", "localhost,127.0.0.1")


def get_upload_accept() -> str:
    return _get_env("UPLOAD_ACCEPT") or "*/*"


def get_upload_size_limit() -> str:
    return _get_env("UPLOAD_SIZE_LIMIT") or "1MB"


def get_api_cors_allow_origins() -> list[str]:
    return _get_list_env("API_CORS_ALLOW_ORIGINS", "http://localhost:3000")


def get_log_level() -> str:
    return (_get_env("LOG_LEVEL") or "INFO").upper()


def get_log_format() -> str:
    return (_get_env("LOG_FORMAT") or "text").lower()
