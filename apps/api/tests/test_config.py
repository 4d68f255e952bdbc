import pytest

from s3_upload import config


def test_get_cors_reap_delay_sec_defaults_to_twice_url_expiry(monkeypatch):
    monkeypatch.delenv("CORS_REAP_DELAY_SEC", raising=False)
    monkeypatch.setenv("UPLOAD_URL_EXPIRES_IN_SEC", "15")

    assert config.get_cors_reap_delay_sec() == 30


def test_get_cors_reap_delay_sec_uses_explicit_value(monkeypatch):
    monkeypatch.setenv("CORS_REAP_DELAY_SEC", "45")

    assert config.get_cors_reap_delay_sec() == 45


def test_invalid_integer_setting_raises(monkeypatch):
    monkeypatch.setenv("CORS_WINDOW_MAX_AGE_SEC", "soon")

    with pytest.raises(ValueError):
        config.get_cors_window_max_age_sec()


def test_get_cors_development_hosts_splits_and_trims(monkeypatch):
    monkeypatch.setenv("CORS_DEVELOPMENT_HOSTS", " localhost , dev.internal ,, ")

    assert config.get_cors_development_hosts() == ["localhost", "dev.internal"]


def test_upload_defaults(monkeypatch):
    monkeypatch.delenv("UPLOAD_ACCEPT", raising=False)
    monkeypatch.delenv("UPLOAD_SIZE_LIMIT", raising=False)
    monkeypatch.setenv("S3_REGION", "   ")

    assert config.get_upload_accept() == "*/*"
    assert config.get_upload_size_limit() == "1MB"
    assert config.get_s3_region() == "ap-northeast-2"
