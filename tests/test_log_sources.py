from datetime import datetime, timezone

import pytest

from connectors.awsnode import AwsNodeSource
from connectors.messages import MessagesSource
from datasources.exceptions import NoMatch, SourceUnavailable, TimestampUnparseable
from engine.enums import MatchSelector
from engine.events.defaults import NODE_READY, THROTTLED, VPC_CNI_INITIALIZED
from engine.events.registry import Event, comment_matched_line

MESSAGES = "\n".join([
    "Mar 14 09:00:10 ip-10-0-0-12 kernel: Linux version 6.1.0-amzn",
    "Mar 14 09:00:25 ip-10-0-0-12 kubelet[1201]: I0314 request.go:690] Waited for 1.1s due to client-side "
    "throttling, not priority and fairness, request: GET:https://api/nodes",
    "Mar 14 09:00:30 ip-10-0-0-12 kubelet[1201]: I0314 event.go:294] event=\"NodeReady\"",
    "Mar 14 09:00:20 ip-10-0-0-12 kubelet[1201]: I0314 request.go:690] Waited for 0.5s due to client-side "
    "throttling, not priority and fairness, request: GET:https://api/pods",
])

AWS_NODE = (
    '{"level":"info","ts":"2026-03-14T09:00:28.123456789Z","caller":"entrypoint.sh",'
    '"msg":"Successfully copied CNI plugin binary and config file."}\n'
)


def regex_event(src, name, regex, **kwargs):
    return Event(name=name, metric=name.lower(), src_name=src.name, find_fn=src.find_by_regex(regex), **kwargs)


@pytest.mark.asyncio
async def test_messages_source_parses_syslog_timestamps(tmp_path, write_log):
    write_log("messages", MESSAGES)
    src = MessagesSource(str(tmp_path / "messages*"), year_instance_launched=2026)

    results = await src.find(regex_event(src, "Node Ready", NODE_READY, terminal=True))

    assert len(results) == 1
    assert results[0].timestamp == datetime(2026, 3, 14, 9, 0, 30, tzinfo=timezone.utc)
    assert results[0].comment == ""


@pytest.mark.asyncio
async def test_messages_source_returns_every_match_sorted_with_comments(tmp_path, write_log):
    write_log("messages", MESSAGES)
    src = MessagesSource(str(tmp_path / "messages"), year_instance_launched=2026)
    event = regex_event(
        src, "Kube-APIServer Throttled", THROTTLED,
        match_selector=MatchSelector.all, comment_fn=comment_matched_line(),
    )

    results = await src.find(event)

    assert [r.timestamp.second for r in results] == [20, 25]
    assert "Waited for 0.5s" in results[0].comment


@pytest.mark.asyncio
async def test_messages_source_without_match(tmp_path, write_log):
    write_log("messages", MESSAGES)
    src = MessagesSource(str(tmp_path / "messages"))
    with pytest.raises(NoMatch):
        await src.find(regex_event(src, "VPC CNI Plugin Initialized", VPC_CNI_INITIALIZED))


@pytest.mark.asyncio
async def test_missing_log_is_unavailable(tmp_path):
    src = MessagesSource(str(tmp_path / "absent*"))
    with pytest.raises(SourceUnavailable):
        await src.find(regex_event(src, "Node Ready", NODE_READY))


@pytest.mark.asyncio
async def test_unparseable_line_is_flagged_not_raised(tmp_path, write_log):
    write_log("messages", "kubelet: event=\"NodeReady\" with no timestamp\n")
    src = MessagesSource(str(tmp_path / "messages"))

    results = await src.find(regex_event(src, "Node Ready", NODE_READY))

    assert results[0].timestamp is None
    assert isinstance(results[0].error, TimestampUnparseable)


@pytest.mark.asyncio
async def test_aws_node_source_reads_rfc3339_timestamps(tmp_path, write_log):
    write_log("aws-node-abc.log", AWS_NODE)
    src = AwsNodeSource(str(tmp_path / "aws-node-*.log"))

    results = await src.find(regex_event(src, "VPC CNI Plugin Initialized", VPC_CNI_INITIALIZED))

    assert results[0].timestamp == datetime(2026, 3, 14, 9, 0, 28, 123456, tzinfo=timezone.utc)


def test_log_source_uses_default_path_and_prints_it():
    src = MessagesSource()
    assert src.path == MessagesSource.default_path
    assert str(src) == MessagesSource.default_path
