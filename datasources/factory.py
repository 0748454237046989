"""
Factory for creating the API clients and sources available to this node.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError
from kubernetes import client as k8s_client, config as k8s_config
from kubernetes.config.config_exception import ConfigException

from connectors.imds import ImdsSource

log = logging.getLogger(__name__)


class SourceFactory:

    @staticmethod
    def create_imds(config) -> Optional[ImdsSource]:
        if config.no_imds:
            return None
        return ImdsSource(
            config.imds_endpoint,
            timeout=config.connector_timeout,
            token_ttl_seconds=config.imds_token_ttl_seconds,
        )

    @staticmethod
    def create_ec2_client(config, region: Optional[str] = None) -> Any:
        try:
            return boto3.client("ec2", region_name=region or config.aws_region)
        except BotoCoreError as exc:
            log.warning("unable to create EC2 client: %s", exc)
            return None

    @staticmethod
    def create_core_v1(config) -> Any:
        try:
            if config.kubeconfig:
                k8s_config.load_kube_config(config_file=config.kubeconfig)
            else:
                k8s_config.load_incluster_config()
        except (ConfigException, OSError) as exc:
            log.warning("Unable to find K8s config: %s", exc)
            return None
        return k8s_client.CoreV1Api()
