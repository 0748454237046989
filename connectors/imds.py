"""
EC2 Instance Metadata Service (IMDSv2) source.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from config import (
    IMDS_HOSTNAME_PATH,
    IMDS_IDENTITY_DOCUMENT_PATH,
    IMDS_TOKEN_HEADER,
    IMDS_TOKEN_PATH,
    IMDS_TOKEN_TTL_HEADER,
    settings,
)
from datasources.base import FindFunc, FindResult, Source, call_find_fn, comment_for
from datasources.exceptions import QueryTimeout, SourceUnavailable, TimestampUnparseable
from datasources.helpers import fetch_json, fetch_text
from datasources.retry import retry

if TYPE_CHECKING:
    from engine.events.registry import Event

log = logging.getLogger(__name__)

NAME = "EC2 IMDS"
PENDING_TIME = f"{IMDS_IDENTITY_DOCUMENT_PATH}/pendingTime"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_unix_micros(ts: datetime) -> int:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    delta = ts - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_unix_micros(value: str) -> datetime:
    return _EPOCH + timedelta(microseconds=int(value))


class ImdsSource(Source):
    name = NAME

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5,
        token_ttl_seconds: int = 21600,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = str(endpoint).rstrip("/")
        self.timeout = timeout
        self.token_ttl_seconds = token_ttl_seconds
        self.transport = transport
        self._document: Optional[Dict[str, Any]] = None

    def clear_cache(self) -> None:
        self._document = None

    @retry(
        attempts=settings.source_retry_attempts,
        delay=settings.source_retry_delay,
        backoff=settings.source_retry_backoff,
        exceptions=(QueryTimeout,),
    )
    async def _token(self) -> str:
        return await fetch_text(
            f"{self.endpoint}{IMDS_TOKEN_PATH}",
            method="PUT",
            headers={IMDS_TOKEN_TTL_HEADER: str(self.token_ttl_seconds)},
            timeout=self.timeout,
            transport=self.transport,
            invalid_msg="IMDS token request failed",
            timeout_msg="IMDS token request timed out",
            unavailable_msg="Cannot reach IMDS at",
        )

    async def _headers(self) -> Dict[str, str]:
        return {IMDS_TOKEN_HEADER: await self._token()}

    @retry(
        attempts=settings.source_retry_attempts,
        delay=settings.source_retry_delay,
        backoff=settings.source_retry_backoff,
        exceptions=(QueryTimeout,),
    )
    async def identity_document(self) -> Dict[str, Any]:
        if self._document is None:
            self._document = await fetch_json(
                f"{self.endpoint}{IMDS_IDENTITY_DOCUMENT_PATH}",
                headers=await self._headers(),
                timeout=self.timeout,
                transport=self.transport,
                invalid_msg="unable to retrieve instance-identity document",
                timeout_msg="IMDS instance-identity document request timed out",
                unavailable_msg="Cannot reach IMDS at",
            )
        return self._document

    async def hostname(self) -> str:
        text = await fetch_text(
            f"{self.endpoint}{IMDS_HOSTNAME_PATH}",
            headers=await self._headers(),
            timeout=self.timeout,
            transport=self.transport,
            invalid_msg="unable to retrieve hostname",
            timeout_msg="IMDS hostname request timed out",
            unavailable_msg="Cannot reach IMDS at",
        )
        return text.strip()

    async def get_metadata(self, path: str) -> str:
        document = await self.identity_document()
        if path == PENDING_TIME:
            raw = document.get("pendingTime")
            if not raw:
                raise SourceUnavailable("pendingTime missing from instance-identity document")
            try:
                pending = datetime.fromisoformat(str(raw))
            except ValueError as exc:
                raise SourceUnavailable(f"invalid pendingTime {raw!r}") from exc
            return str(to_unix_micros(pending))
        raise SourceUnavailable(f'metadata for path "{path}" is not available')

    def find_by_path(self, path: str) -> FindFunc:
        async def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
            return [await self.get_metadata(path)]

        return _find

    async def find(self, event: "Event") -> List[FindResult]:
        values = await call_find_fn(event.find_fn, self, None)
        results: List[FindResult] = []
        for value in values:
            ts: Optional[datetime] = None
            err: Optional[Exception] = None
            try:
                ts = from_unix_micros(value)
            except (TypeError, ValueError, OverflowError) as exc:
                err = TimestampUnparseable(f"invalid epoch microseconds {value!r}: {exc}")
            results.append(FindResult(line=value, timestamp=ts, comment=comment_for(event, value), error=err))
        return results
