"""
Shared helper functions for HTTP backed sources.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx

from datasources.exceptions import QueryTimeout, SourceUnavailable


async def fetch_text(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 5,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    invalid_msg: str = "request failed",
    timeout_msg: str = "request timed out",
    unavailable_msg: str = "Cannot reach source at",
) -> str:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.request(method, url, headers=headers)
            resp.raise_for_status()
            return resp.text
    except httpx.HTTPStatusError as e:
        raise SourceUnavailable(f"{invalid_msg} [{e.response.status_code}]: {e.response.text}") from e
    except httpx.TimeoutException as e:
        raise QueryTimeout(timeout_msg) from e
    except httpx.RequestError as e:
        raise SourceUnavailable(f"{unavailable_msg} {url}") from e


async def fetch_json(url: str, **kwargs: Any) -> Dict[str, Any]:
    text = await fetch_text(url, **kwargs)
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise SourceUnavailable(f"invalid JSON from {url}") from e
    if not isinstance(payload, dict):
        raise SourceUnavailable(f"unexpected JSON payload from {url}")
    return payload
