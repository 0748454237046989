"""
Tests for the log reader: rotated file selection, gzip, caching, regex search and timestamp parsing.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from datetime import datetime, timezone

import pytest

from datasources.exceptions import NoMatch, SourceUnavailable, TimestampUnparseable
from datasources.logreader import LogReader, oldest

SYSLOG_TS = r"[A-Z][a-z]+[ ]+[0-9][0-9]? [0-9]{2}:[0-9]{2}:[0-9]{2}"
SYSLOG_LAYOUT = "%b %d %H:%M:%S %Y"
ISO_TS = r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}\.[0-9]+Z"
ISO_LAYOUT = "%Y-%m-%dT%H:%M:%S.%fZ"


def make_reader(path, **kwargs):
    kwargs.setdefault("year_instance_launched", 2026)
    return LogReader(str(path), timestamp_regex=SYSLOG_TS, timestamp_layout=SYSLOG_LAYOUT, **kwargs)


def test_glob_reads_oldest_rotated_file_and_decompresses(tmp_path, write_log):
    write_log("log.1.gz", "Mar 14 09:00:01 host kernel: Linux version 6.1\n", mtime=1_000)
    write_log("log.2", "Mar 14 09:05:00 host second\n", mtime=2_000)
    write_log("log", "Mar 14 09:10:00 host newest\n", mtime=3_000)

    reader = make_reader(tmp_path / "log*")
    assert reader.resolve_path().endswith("log.1.gz")
    assert b"kernel: Linux version" in reader.read()


def test_oldest_breaks_mtime_ties_lexically(tmp_path, write_log):
    b = write_log("b.log", "x", mtime=1_000)
    a = write_log("a.log", "x", mtime=1_000)
    assert oldest([str(b), str(a)]) == str(a)


def test_missing_file_is_source_unavailable(tmp_path):
    reader = make_reader(tmp_path / "nothing*")
    with pytest.raises(SourceUnavailable):
        reader.read()


def test_non_glob_path_is_used_verbatim(tmp_path, write_log):
    path = write_log("messages", "Mar 14 09:00:01 host hello\n")
    reader = make_reader(path, glob=False)
    assert reader.resolve_path() == str(path)
    assert reader.find("hello") == ["hello"]


def test_read_is_cached_until_cleared(tmp_path, write_log):
    path = write_log("messages", "Mar 14 09:00:01 host first\n")
    reader = make_reader(path)
    assert b"first" in reader.read()

    path.write_text("Mar 14 09:00:02 host second\n")
    assert b"first" in reader.read()

    reader.clear_cache()
    assert b"second" in reader.read()


def test_find_returns_every_matching_line(tmp_path, write_log):
    path = write_log("messages", "\n".join([
        "Mar 14 09:00:01 host kubelet: Waited for 1s due to throttling",
        "Mar 14 09:00:02 host other line",
        "Mar 14 09:00:03 host kubelet: Waited for 2s due to throttling",
    ]))
    reader = make_reader(path)
    lines = reader.find(r".*Waited for .* due to throttling.*")
    assert len(lines) == 2
    assert lines[0].startswith("Mar 14 09:00:01")


def test_find_without_match_raises_no_match(tmp_path, write_log):
    path = write_log("messages", "Mar 14 09:00:01 host nothing here\n")
    reader = make_reader(path)
    with pytest.raises(NoMatch):
        reader.find(r".*event=\"NodeReady\".*")


def test_parse_timestamp_appends_launch_year_and_collapses_spaces(tmp_path):
    reader = make_reader(tmp_path / "messages", year_instance_launched=2024)
    ts = reader.parse_timestamp("Mar  4 09:00:01 host kernel: Linux version")
    assert ts == datetime(2024, 3, 4, 9, 0, 1, tzinfo=timezone.utc)


def test_parse_timestamp_defaults_to_current_year(tmp_path):
    reader = make_reader(tmp_path / "messages", year_instance_launched=None)
    ts = reader.parse_timestamp("Mar 14 09:00:01 host x")
    assert ts.year == datetime.now(timezone.utc).year


def test_parse_timestamp_keeps_explicit_year_and_trims_nanoseconds(tmp_path):
    reader = LogReader(
        str(tmp_path / "aws-node.log"),
        timestamp_regex=ISO_TS,
        timestamp_layout=ISO_LAYOUT,
        year_instance_launched=2020,
    )
    ts = reader.parse_timestamp('{"ts":"2026-03-14T09:00:01.123456789Z","msg":"copied"}')
    assert ts == datetime(2026, 3, 14, 9, 0, 1, 123456, tzinfo=timezone.utc)


def test_parse_timestamp_without_timestamp_raises(tmp_path):
    reader = make_reader(tmp_path / "messages")
    with pytest.raises(TimestampUnparseable):
        reader.parse_timestamp("no timestamp on this line")


def test_parse_timestamp_with_bad_value_raises(tmp_path):
    reader = make_reader(tmp_path / "messages")
    with pytest.raises(TimestampUnparseable):
        reader.parse_timestamp("Foo 14 09:00:01 host x")


def test_find_accepts_bytes_patterns(tmp_path, write_log):
    path = write_log("messages", "Mar 14 09:00:30 host kubelet: event=\"NodeReady\"\n")
    reader = make_reader(path)
    assert reader.find(rb'.*event="NodeReady".*') == ['Mar 14 09:00:30 host kubelet: event="NodeReady"']
