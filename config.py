"""
Constants and configuration for Node Latency.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import os
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


SERVICE_NAME = "node-latency-for-k8s"

OUTPUT_MARKDOWN = "markdown"
OUTPUT_JSON = "json"

NODE_LATENCY_TIMEOUT = int(os.getenv("NODE_LATENCY_TIMEOUT", "600"))
NODE_LATENCY_RETRY_DELAY = int(os.getenv("NODE_LATENCY_RETRY_DELAY", "5"))

NODE_LATENCY_IMDS_ENDPOINT = os.getenv("NODE_LATENCY_IMDS_ENDPOINT", "http://169.254.169.254").rstrip("/")
NODE_LATENCY_IMDS_TOKEN_TTL = int(os.getenv("NODE_LATENCY_IMDS_TOKEN_TTL", "21600"))
NODE_LATENCY_CONNECTOR_TIMEOUT = int(os.getenv("NODE_LATENCY_CONNECTOR_TIMEOUT", "5"))

NODE_LATENCY_POD_NAMESPACE = os.getenv("NODE_LATENCY_POD_NAMESPACE", "default")
NODE_LATENCY_NODE_NAME = os.getenv("NODE_LATENCY_NODE_NAME", "")

NODE_LATENCY_EXPERIMENT_DIMENSION = os.getenv("NODE_LATENCY_EXPERIMENT_DIMENSION", "none")
NODE_LATENCY_METRICS_PORT = int(os.getenv("NODE_LATENCY_METRICS_PORT", "2112"))

# default log locations on an EKS optimized AMI
MESSAGES_DEFAULT_PATH = "/var/log/messages*"
AWS_NODE_DEFAULT_PATH = "/var/log/pods/kube-system_aws-node-*/aws-node/*.log"

# IMDSv2 paths
IMDS_TOKEN_PATH = "/latest/api/token"
IMDS_IDENTITY_DOCUMENT_PATH = "/latest/dynamic/instance-identity/document"
IMDS_HOSTNAME_PATH = "/latest/meta-data/hostname"
IMDS_TOKEN_HEADER = "X-aws-ec2-metadata-token"
IMDS_TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"

EC2_FLEET_TAG = "aws:ec2:fleet-id"

# chart column labels
CHART_COLUMN_EVENT = "Event"
CHART_COLUMN_TIMESTAMP = "Timestamp"
CHART_COLUMN_T = "T"
CHART_COLUMN_COMMENT = "Comment"


class Settings(BaseSettings):
    timeout_seconds: int = NODE_LATENCY_TIMEOUT
    retry_delay_seconds: int = NODE_LATENCY_RETRY_DELAY

    imds_endpoint: str = NODE_LATENCY_IMDS_ENDPOINT
    imds_token_ttl_seconds: int = NODE_LATENCY_IMDS_TOKEN_TTL
    no_imds: bool = False
    connector_timeout: int = NODE_LATENCY_CONNECTOR_TIMEOUT
    aws_region: Optional[str] = None

    pod_namespace: str = NODE_LATENCY_POD_NAMESPACE
    node_name: str = NODE_LATENCY_NODE_NAME
    kubeconfig: str = ""

    messages_path: str = MESSAGES_DEFAULT_PATH
    aws_node_path: str = AWS_NODE_DEFAULT_PATH

    experiment_dimension: str = NODE_LATENCY_EXPERIMENT_DIMENSION
    metrics_port: int = NODE_LATENCY_METRICS_PORT
    output: str = OUTPUT_MARKDOWN
    no_comments: bool = False

    # retry knobs for remote source calls
    source_retry_attempts: int = 3
    source_retry_delay: float = 0.2
    source_retry_backoff: float = 2.0

    @field_validator("imds_endpoint", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return str(v or "").rstrip("/")

    @field_validator("output", mode="before")
    @classmethod
    def validate_output(cls, v: str) -> str:
        value = str(v or "").strip().lower()
        if value not in {OUTPUT_MARKDOWN, OUTPUT_JSON}:
            raise ValueError(f"Unsupported output type: {value!r}")
        return value

    model_config = {
        "env_prefix": "NODE_LATENCY_",
        "extra": "ignore",
    }


settings = Settings()
