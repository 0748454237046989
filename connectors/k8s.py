"""
Kubernetes API source for pod creation times on the measured node.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from datasources.base import FindFunc, FindResult, Source, call_find_fn, comment_for
from datasources.exceptions import NoMatch, SourceUnavailable, TimestampUnparseable

if TYPE_CHECKING:
    from engine.events.registry import Event

NAME = "K8s"


def _pod_line(pod: Any) -> str:
    meta = pod.metadata
    created = meta.creation_timestamp
    return json.dumps({
        "name": meta.name,
        "namespace": meta.namespace,
        "creationTimestamp": created.isoformat() if isinstance(created, datetime) else created,
    })


def parse_time_for(line: str) -> datetime:
    try:
        payload = json.loads(line)
    except ValueError as exc:
        raise TimestampUnparseable("unable to parse event") from exc
    raw = payload.get("creationTimestamp") if isinstance(payload, dict) else None
    if not raw:
        raise TimestampUnparseable("unable to parse event")
    try:
        ts = datetime.fromisoformat(str(raw))
    except ValueError as exc:
        raise TimestampUnparseable(f"invalid creationTimestamp {raw!r}") from exc
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class K8sSource(Source):
    name = NAME

    def __init__(self, core_v1: Any, node_name: str, pod_namespace: str) -> None:
        self.core_v1 = core_v1
        self.node_name = node_name
        self.pod_namespace = pod_namespace

    def list_pod_lines(self) -> List[str]:
        try:
            pods = self.core_v1.list_namespaced_pod(
                self.pod_namespace,
                field_selector=f"spec.nodeName={self.node_name}",
            )
        except (ApiException, HTTPError) as exc:
            raise SourceUnavailable(f"unable to list pods in {self.pod_namespace} on {self.node_name}: {exc}") from exc
        lines = [_pod_line(pod) for pod in pods.items or []]
        if not lines:
            raise NoMatch(f"no pods in {self.pod_namespace} scheduled on {self.node_name}")
        return lines

    def find_pod_creation_time(self) -> FindFunc:
        async def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
            return await asyncio.to_thread(self.list_pod_lines)

        return _find

    async def find(self, event: "Event") -> List[FindResult]:
        lines = await call_find_fn(event.find_fn, self, None)
        results: List[FindResult] = []
        for line in lines:
            try:
                ts, err = parse_time_for(line), None
            except TimestampUnparseable as exc:
                ts, err = None, exc
            results.append(FindResult(line=line, timestamp=ts, comment=comment_for(event, line), error=err))
        return results
