"""
EC2 API source for fleet request and instance launch times.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from config import EC2_FLEET_TAG
from datasources.base import FindFunc, FindResult, Source, call_find_fn, comment_for
from datasources.exceptions import SourceUnavailable, TimestampUnparseable

if TYPE_CHECKING:
    from engine.events.registry import Event

log = logging.getLogger(__name__)

NAME = "EC2"

_INSTANCE_ID_RE = re.compile(r"i-[0-9a-zA-Z]+")
_TIME_KEYS = ("CreateTime", "LaunchTime")


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def parse_time_for(line: str) -> datetime:
    try:
        payload = json.loads(line)
    except ValueError as exc:
        raise TimestampUnparseable("unable to parse event") from exc
    if isinstance(payload, dict):
        for key in _TIME_KEYS:
            raw = payload.get(key)
            if not raw:
                continue
            try:
                ts = datetime.fromisoformat(str(raw))
            except ValueError as exc:
                raise TimestampUnparseable(f"invalid {key} {raw!r}") from exc
            return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    raise TimestampUnparseable("unable to parse event")


class Ec2Source(Source):
    name = NAME

    def __init__(self, ec2_client: Any, instance_id: str = "", node_name: str = "") -> None:
        self.client = ec2_client
        self.instance_id = instance_id
        self.node_name = node_name
        self.fleet_id = ""
        self._instance: Optional[Dict[str, Any]] = None
        self._fleet: Optional[Dict[str, Any]] = None

    def clear_cache(self) -> None:
        self._instance = None
        self._fleet = None

    def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            return getattr(self.client, operation)(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise SourceUnavailable(f"EC2 {operation} failed: {exc}") from exc

    def _resolve_instance_id(self) -> str:
        if self.instance_id:
            return self.instance_id
        if not self.node_name:
            raise SourceUnavailable("unable to get instance ID")
        match = _INSTANCE_ID_RE.search(self.node_name)
        if match:
            self.instance_id = match.group(0)
            return self.instance_id
        out = self._call(
            "describe_instances",
            Filters=[
                {"Name": "network-interface.private-dns-name", "Values": [self.node_name]},
                {"Name": "instance-state-name", "Values": ["running"]},
            ],
        )
        reservations = out.get("Reservations") or []
        if len(reservations) != 1 or len(reservations[0].get("Instances") or []) != 1:
            raise SourceUnavailable(f"unable to discover instance-id from node-name: {self.node_name}")
        self.instance_id = reservations[0]["Instances"][0]["InstanceId"]
        return self.instance_id

    def _resolve_fleet_id(self) -> str:
        if self.fleet_id:
            return self.fleet_id
        instance_id = self._resolve_instance_id()
        out = self._call(
            "describe_tags",
            Filters=[
                {"Name": "resource-type", "Values": ["instance"]},
                {"Name": "resource-id", "Values": [instance_id]},
            ],
        )
        for tag in out.get("Tags") or []:
            if tag.get("Key") == EC2_FLEET_TAG:
                self.fleet_id = tag["Value"]
                return self.fleet_id
        raise SourceUnavailable(f"unable to find fleet tag for {instance_id}")

    def describe_instance(self) -> Dict[str, Any]:
        if self._instance is None:
            instance_id = self._resolve_instance_id()
            out = self._call("describe_instances", InstanceIds=[instance_id])
            reservations = out.get("Reservations") or []
            if not reservations or not reservations[0].get("Instances"):
                raise SourceUnavailable(f"no instance found for {instance_id}")
            self._instance = reservations[0]["Instances"][0]
        return self._instance

    def describe_fleet(self) -> Dict[str, Any]:
        if self._fleet is None:
            fleet_id = self._resolve_fleet_id()
            out = self._call("describe_fleets", FleetIds=[fleet_id])
            fleets = out.get("Fleets") or []
            if len(fleets) != 1:
                raise SourceUnavailable(f"no fleet found for {self.instance_id} and fleet-id {fleet_id}")
            self._fleet = fleets[0]
        return self._fleet

    async def launch_year(self) -> Optional[int]:
        instance = await asyncio.to_thread(self.describe_instance)
        launch_time = instance.get("LaunchTime")
        if isinstance(launch_time, datetime):
            return launch_time.year
        if launch_time:
            return datetime.fromisoformat(str(launch_time)).year
        return None

    def find_fleet_start(self) -> FindFunc:
        async def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
            fleet = await asyncio.to_thread(self.describe_fleet)
            return [json.dumps(fleet, default=_json_default)]

        return _find

    def find_instance_launch(self) -> FindFunc:
        async def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
            instance = await asyncio.to_thread(self.describe_instance)
            return [json.dumps(instance, default=_json_default)]

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
