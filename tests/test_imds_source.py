"""
Tests for the IMDSv2 source.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from datetime import datetime, timezone

import httpx
import pytest

from connectors.imds import PENDING_TIME, ImdsSource, from_unix_micros, to_unix_micros
from datasources.exceptions import QueryTimeout, SourceUnavailable, TimestampUnparseable
from engine.events.registry import Event

DOCUMENT = {
    "accountId": "123456789012",
    "architecture": "x86_64",
    "availabilityZone": "us-west-2a",
    "imageId": "ami-0123456789abcdef0",
    "instanceId": "i-0123456789abcdef0",
    "instanceType": "m5.large",
    "pendingTime": "2026-03-14T09:00:00Z",
    "privateIp": "10.0.0.12",
    "region": "us-west-2",
}


class FakeImds:
    def __init__(self, document=None, token_failures=0):
        self.document = DOCUMENT if document is None else document
        self.token_failures = token_failures
        self.requests = []

    def __call__(self, request):
        self.requests.append((request.method, request.url.path))
        if request.url.path == "/latest/api/token":
            assert request.method == "PUT"
            assert request.headers["X-aws-ec2-metadata-token-ttl-seconds"] == "60"
            if self.token_failures:
                self.token_failures -= 1
                raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(200, text="token-abc")
        if request.headers.get("X-aws-ec2-metadata-token") != "token-abc":
            return httpx.Response(401, text="unauthorized")
        if request.url.path == "/latest/dynamic/instance-identity/document":
            return httpx.Response(200, json=self.document)
        if request.url.path == "/latest/meta-data/hostname":
            return httpx.Response(200, text="ip-10-0-0-12.us-west-2.compute.internal\n")
        return httpx.Response(404, text="not found")

    def count(self, path):
        return sum(1 for _, p in self.requests if p == path)


def make_source(fake):
    return ImdsSource("http://imds.test/", token_ttl_seconds=60, transport=httpx.MockTransport(fake))


def pending_event(src):
    return Event(name="Instance Pending", metric="instance_pending", src_name=src.name, find_fn=src.find_by_path(PENDING_TIME))


def test_unix_micros_round_trip_keeps_precision():
    ts = datetime(2026, 3, 14, 9, 0, 0, 123456, tzinfo=timezone.utc)
    assert from_unix_micros(str(to_unix_micros(ts))) == ts


@pytest.mark.asyncio
async def test_identity_document_is_cached_until_cleared():
    fake = FakeImds()
    src = make_source(fake)
    assert src.endpoint == "http://imds.test"

    doc = await src.identity_document()
    await src.identity_document()
    assert doc["instanceId"] == "i-0123456789abcdef0"
    assert fake.count("/latest/dynamic/instance-identity/document") == 1

    src.clear_cache()
    await src.identity_document()
    assert fake.count("/latest/dynamic/instance-identity/document") == 2


@pytest.mark.asyncio
async def test_hostname_is_stripped():
    src = make_source(FakeImds())
    assert await src.hostname() == "ip-10-0-0-12.us-west-2.compute.internal"


@pytest.mark.asyncio
async def test_pending_time_is_epoch_micros():
    src = make_source(FakeImds())
    value = await src.get_metadata(PENDING_TIME)
    assert from_unix_micros(value) == datetime(2026, 3, 14, 9, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_unknown_path_is_unavailable():
    src = make_source(FakeImds())
    with pytest.raises(SourceUnavailable):
        await src.get_metadata("/latest/meta-data/unknown")


@pytest.mark.asyncio
async def test_find_returns_pending_time():
    src = make_source(FakeImds())
    results = await src.find(pending_event(src))
    assert len(results) == 1
    assert results[0].timestamp == datetime(2026, 3, 14, 9, 0, 0, tzinfo=timezone.utc)
    assert results[0].error is None


@pytest.mark.asyncio
async def test_find_without_pending_time_raises():
    doc = dict(DOCUMENT)
    doc.pop("pendingTime")
    src = make_source(FakeImds(document=doc))
    with pytest.raises(SourceUnavailable):
        await src.find(pending_event(src))


@pytest.mark.asyncio
async def test_find_flags_unparseable_value():
    src = make_source(FakeImds())

    async def bogus(_src, _data):
        return ["not-a-number"]

    event = Event(name="Instance Pending", metric="instance_pending", src_name=src.name, find_fn=bogus)
    results = await src.find(event)
    assert results[0].timestamp is None
    assert isinstance(results[0].error, TimestampUnparseable)


@pytest.mark.asyncio
async def test_token_timeout_is_retried():
    fake = FakeImds(token_failures=1)
    src = make_source(fake)
    doc = await src.identity_document()
    assert doc["region"] == "us-west-2"
    assert fake.count("/latest/api/token") == 2


@pytest.mark.asyncio
async def test_token_timeout_gives_up_after_retries():
    fake = FakeImds(token_failures=100)
    src = make_source(fake)
    with pytest.raises(QueryTimeout):
        await src.hostname()


@pytest.mark.asyncio
async def test_metadata_provider_maps_identity_document():
    from engine.metadata import ImdsMetadataProvider

    metadata = await ImdsMetadataProvider(make_source(FakeImds())).get()
    assert metadata.instance_id == "i-0123456789abcdef0"
    assert metadata.ami_id == "ami-0123456789abcdef0"
    assert metadata.private_ip == "10.0.0.12"
    assert metadata.availability_zone == "us-west-2a"
    assert metadata.to_dict()["instanceType"] == "m5.large"
