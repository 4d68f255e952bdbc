"""Temporary CORS windows on a private bucket.

A window is one extra CORS rule that lets a single browser origin PUT to the
bucket. Each upload session owns at most one window per bucket. Every
read-modify-write of a bucket's CORS configuration runs under that bucket's
lock, so overlapping sessions in this process never lose each other's rules.
S3 offers no conditional write for CORS, so writers in other processes are
not covered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from s3_upload.errors import StoreCommunicationError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MAX_AGE_SEC = 3000
DEFAULT_DEVELOPMENT_HOSTS = ("localhost", "127.0.0.1")
_MISSING_CORS_ERROR_CODES = {"NoSuchCORSConfiguration"}


@dataclass(frozen=True)
class CorsRule:
    allowed_methods: frozenset[str]
    allowed_origins: frozenset[str]
    allowed_headers: frozenset[str] = field(default_factory=frozenset)
    expose_headers: frozenset[str] = field(default_factory=frozenset)
    max_age_seconds: int | None = None
    rule_id: str | None = None

    @classmethod
    def from_boto(cls, payload: dict) -> CorsRule:
        max_age = payload.get("MaxAgeSeconds")
        return cls(
            allowed_methods=frozenset(payload.get("AllowedMethods") or []),
            allowed_origins=frozenset(payload.get("AllowedOrigins") or []),
            allowed_headers=frozenset(payload.get("AllowedHeaders") or []),
            expose_headers=frozenset(payload.get("ExposeHeaders") or []),
            max_age_seconds=int(max_age) if max_age is not None else None,
            rule_id=payload.get("ID"),
        )

    def to_boto(self) -> dict:
        payload: dict = {
            "AllowedMethods": sorted(self.allowed_methods),
            "AllowedOrigins": sorted(self.allowed_origins),
            "AllowedHeaders": sorted(self.allowed_headers),
            "ExposeHeaders": sorted(self.expose_headers),
        }
        if self.max_age_seconds is not None:
            payload["MaxAgeSeconds"] = self.max_age_seconds
        if self.rule_id:
            payload["ID"] = self.rule_id
        return payload


def qualify_origin(origin_host: str, development_hosts=DEFAULT_DEVELOPMENT_HOSTS) -> str:
    """Turn ``host[:port]`` into a browser origin.

    Development hosts get ``http://``, everything else ``https://``. Values
    that already carry a scheme are returned unchanged.
    """
    candidate = origin_host.strip().rstrip("/")
    if not candidate:
        raise ValueError("origin_host must not be empty")
    if "://" in candidate:
        return candidate

    hostname = _hostname(candidate).lower()
    is_development = hostname in {host.lower() for host in development_hosts} or hostname.endswith(".localhost")
    scheme = "http" if is_development else "https"
    return f"{scheme}://{candidate}"


def _hostname(host: str) -> str:
    if host.startswith("["):
        # [::1]:3000
        return host[1 : host.find("]")] if "]" in host else host
    return host.split(":", 1)[0]


def build_window_rule(origin: str, *, max_age_seconds: int = DEFAULT_WINDOW_MAX_AGE_SEC) -> CorsRule:
    return CorsRule(
        allowed_methods=frozenset({"PUT"}),
        allowed_origins=frozenset({origin}),
        allowed_headers=frozenset({"*"}),
        expose_headers=frozenset(),
        max_age_seconds=max_age_seconds,
    )


class CorsWindowManager:
    def __init__(
        self,
        client: BaseClient,
        *,
        max_age_seconds: int = DEFAULT_WINDOW_MAX_AGE_SEC,
        development_hosts=DEFAULT_DEVELOPMENT_HOSTS,
    ) -> None:
        self._client = client
        self._max_age_seconds = max_age_seconds
        self._development_hosts = tuple(development_hosts)
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, dict[str, CorsRule]] = {}

    def _lock_for(self, bucket: str) -> asyncio.Lock:
        lock = self._locks.get(bucket)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[bucket] = lock
        return lock

    def pending_rule(self, bucket: str, session_id: str) -> CorsRule | None:
        return self._pending.get(bucket, {}).get(session_id)

    def pending_sessions(self, bucket: str) -> list[str]:
        return list(self._pending.get(bucket, {}))

    async def current_rules(self, bucket: str) -> list[CorsRule]:
        """Return the bucket's CORS rules; a missing configuration is ``[]``."""
        try:
            response = await asyncio.to_thread(self._client.get_bucket_cors, Bucket=bucket)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code not in _MISSING_CORS_ERROR_CODES:
                logger.warning("Reading CORS of bucket=%s failed (%s); treating as no rules", bucket, code)
            return []
        except BotoCoreError as exc:
            logger.warning("Reading CORS of bucket=%s failed (%s); treating as no rules", bucket, exc)
            return []
        return [CorsRule.from_boto(item) for item in response.get("CORSRules") or []]

    async def open_window(self, bucket: str, origin_host: str, *, session_id: str) -> CorsRule:
        if self.pending_rule(bucket, session_id) is not None:
            await self.close_window(bucket, session_id)

        origin = qualify_origin(origin_host, self._development_hosts)
        rule = build_window_rule(origin, max_age_seconds=self._max_age_seconds)

        async with self._lock_for(bucket):
            rules = await self.current_rules(bucket)
            rules.append(rule)
            await self._write_rules(bucket, rules)
            self._pending.setdefault(bucket, {})[session_id] = rule

        logger.info("Opened CORS window: bucket=%s, origin=%s, session_id=%s", bucket, origin, session_id)
        return rule

    async def close_window(self, bucket: str, session_id: str) -> bool:
        """Remove the session's rule. Returns ``False`` when nothing was pending."""
        async with self._lock_for(bucket):
            rule = self.pending_rule(bucket, session_id)
            if rule is None:
                return False

            rules = await self.current_rules(bucket)
            if rule in rules:
                rules.remove(rule)
                await self._write_rules(bucket, rules)
            else:
                logger.warning("CORS window rule already gone: bucket=%s, session_id=%s", bucket, session_id)

            bucket_pending = self._pending[bucket]
            del bucket_pending[session_id]
            if not bucket_pending:
                del self._pending[bucket]

        logger.info("Closed CORS window: bucket=%s, session_id=%s", bucket, session_id)
        return True

    async def _write_rules(self, bucket: str, rules: list[CorsRule]) -> None:
        try:
            if rules:
                await asyncio.to_thread(
                    self._client.put_bucket_cors,
                    Bucket=bucket,
                    CORSConfiguration={"CORSRules": [rule.to_boto() for rule in rules]},
                )
            else:
                # S3 rejects an empty CORSRules list.
                await asyncio.to_thread(self._client.delete_bucket_cors, Bucket=bucket)
        except (BotoCoreError, ClientError) as exc:
            raise StoreCommunicationError(f"Failed to update CORS of bucket {bucket}: {exc}") from exc
