import pytest
from pydantic import ValidationError

from config import OUTPUT_JSON, OUTPUT_MARKDOWN, Settings


def test_defaults():
    cfg = Settings()
    assert cfg.output == OUTPUT_MARKDOWN
    assert cfg.pod_namespace
    assert cfg.messages_path.startswith("/var/log/messages")
    assert not cfg.imds_endpoint.endswith("/")


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("NODE_LATENCY_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("NODE_LATENCY_NODE_NAME", "ip-10-0-0-12.us-west-2.compute.internal")
    monkeypatch.setenv("NODE_LATENCY_OUTPUT", "JSON")
    monkeypatch.setenv("NODE_LATENCY_NO_IMDS", "true")
    cfg = Settings()
    assert cfg.timeout_seconds == 30
    assert cfg.node_name == "ip-10-0-0-12.us-west-2.compute.internal"
    assert cfg.output == OUTPUT_JSON
    assert cfg.no_imds is True


def test_imds_endpoint_trailing_slash_is_stripped():
    assert Settings(imds_endpoint="http://169.254.169.254/").imds_endpoint == "http://169.254.169.254"


def test_unsupported_output_is_rejected():
    with pytest.raises(ValidationError):
        Settings(output="yaml")
