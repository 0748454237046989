"""
Default node lifecycle events and the builder that wires the default sources to them.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Optional

from config import Settings, settings as default_settings
from connectors import awsnode, ec2 as ec2src, imds as imdssrc, k8s as k8ssrc, messages
from connectors.awsnode import AwsNodeSource
from connectors.ec2 import Ec2Source
from connectors.imds import ImdsSource
from connectors.k8s import K8sSource
from connectors.messages import MessagesSource
from datasources.base import FindFunc, Source
from datasources.exceptions import SourceError, SourceUnavailable
from engine.enums import MatchSelector
from engine.events.registry import Event, EventRegistrationError, comment_matched_line
from engine.measurer import Measurer
from engine.metadata import ImdsMetadataProvider

log = logging.getLogger(__name__)

VM_INIT = re.compile(r".*kernel: Linux version.*")
NETWORK_START = re.compile(r".*Reached target Network \(Pre\).*")
NETWORK_READY = re.compile(r".*Reached target Network\..*")
CLOUD_INIT_INITIAL_START = re.compile(r".*cloud-init: Cloud-init v.* running 'init'.*")
CLOUD_INIT_CONFIG_START = re.compile(r".*cloud-init: Cloud-init v.* running 'modules:config'.*")
CLOUD_INIT_FINAL_START = re.compile(r".*cloud-init: Cloud-init v.* running 'modules:final'.*")
CLOUD_INIT_FINAL_FINISH = re.compile(r".*cloud-init: Cloud-init v.* finished")
CONTAINERD_START = re.compile(r".*Starting containerd container runtime.*")
CONTAINERD_INITIALIZED = re.compile(r".*Started containerd container runtime.*")
KUBELET_START = re.compile(r".*Starting Kubernetes Kubelet.*")
KUBELET_INITIALIZED = re.compile(r".*Started kubelet.*")
KUBELET_REGISTERED = re.compile(r".*Successfully registered node.*")
KUBE_PROXY_START = re.compile(r".*CreateContainer within sandbox .*Name:kube-proxy.* returns container id.*")
VPC_CNI_INIT_START = re.compile(r".*CreateContainer within sandbox .*Name:aws-vpc-cni-init.* returns container id.*")
AWS_NODE_START = re.compile(r".*CreateContainer within sandbox .*Name:aws-node.* returns container id.*")
VPC_CNI_INITIALIZED = re.compile(r".*Successfully copied CNI plugin binary and config file.*")
NODE_READY = re.compile(r'.*event="NodeReady".*')
THROTTLED = re.compile(r".*Waited for .* due to client-side throttling, not priority and fairness, request: .*")
POD_READY_TEMPLATE = ".*{namespace}/.* Type:ContainerStarted.*"


def pod_ready_regex(namespace: str) -> re.Pattern[str]:
    return re.compile(POD_READY_TEMPLATE.format(namespace=re.escape(namespace)))


def _unregistered(src_name: str) -> FindFunc:
    def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
        raise SourceUnavailable(f'source "{src_name}" is not registered')

    return _find


def _bind(measurer: Measurer, src_name: str, build: Callable[[Any], FindFunc]) -> FindFunc:
    src = measurer.get_source(src_name)
    return build(src) if src is not None else _unregistered(src_name)


def default_events(measurer: Measurer, pod_namespace: str) -> List[Event]:
    """Default events bound to whichever default sources ``measurer`` has registered.

    Events whose source is missing are still returned so that registration
    reports them.
    """

    def log_event(name: str, metric: str, src_name: str, regex: re.Pattern[str], **kwargs: Any) -> Event:
        return Event(
            name=name,
            metric=metric,
            src_name=src_name,
            find_fn=_bind(measurer, src_name, lambda s: s.find_by_regex(regex)),
            **kwargs,
        )

    return [
        Event(
            name="Pod Created",
            metric="pod_created",
            src_name=k8ssrc.NAME,
            find_fn=_bind(measurer, k8ssrc.NAME, lambda s: s.find_pod_creation_time()),
        ),
        Event(
            name="Fleet Requested",
            metric="fleet_requested",
            src_name=ec2src.NAME,
            find_fn=_bind(measurer, ec2src.NAME, lambda s: s.find_fleet_start()),
        ),
        Event(
            name="Instance Requested",
            metric="instance_requested",
            src_name=ec2src.NAME,
            find_fn=_bind(measurer, ec2src.NAME, lambda s: s.find_instance_launch()),
        ),
        Event(
            name="Instance Pending",
            metric="instance_pending",
            src_name=imdssrc.NAME,
            find_fn=_bind(measurer, imdssrc.NAME, lambda s: s.find_by_path(imdssrc.PENDING_TIME)),
        ),
        log_event("VM Initialized", "vm_initialized", messages.NAME, VM_INIT),
        log_event("Network Start", "network_start", messages.NAME, NETWORK_START),
        log_event("Network Ready", "network_ready", messages.NAME, NETWORK_READY),
        log_event("Cloud-Init Initial Start", "cloudinit_initial_start", messages.NAME, CLOUD_INIT_INITIAL_START),
        log_event("Cloud-Init Config Start", "cloudinit_config_start", messages.NAME, CLOUD_INIT_CONFIG_START),
        log_event("Cloud-Init Final Start", "cloudinit_final_start", messages.NAME, CLOUD_INIT_FINAL_START),
        log_event("Cloud-Init Final Finish", "cloudinit_final_finish", messages.NAME, CLOUD_INIT_FINAL_FINISH),
        log_event("Containerd Start", "containerd_start", messages.NAME, CONTAINERD_START),
        log_event("Containerd Initialized", "containerd_initialized", messages.NAME, CONTAINERD_INITIALIZED),
        log_event("Kubelet Start", "kubelet_start", messages.NAME, KUBELET_START),
        log_event("Kubelet Initialized", "kubelet_initialized", messages.NAME, KUBELET_INITIALIZED),
        log_event("Kubelet Registered", "kubelet_registered", messages.NAME, KUBELET_REGISTERED),
        log_event("Kube-Proxy Start", "kube_proxy_start", messages.NAME, KUBE_PROXY_START),
        log_event("VPC CNI Init Start", "vpc_cni_init_start", messages.NAME, VPC_CNI_INIT_START),
        log_event("AWS Node Start", "aws_node_start", messages.NAME, AWS_NODE_START),
        log_event("VPC CNI Plugin Initialized", "vpc_cni_plugin_initialized", awsnode.NAME, VPC_CNI_INITIALIZED),
        log_event(
            "Kube-APIServer Throttled",
            "kube_apiserver_throttled",
            messages.NAME,
            THROTTLED,
            match_selector=MatchSelector.all,
            comment_fn=comment_matched_line(),
        ),
        log_event("Node Ready", "node_ready", messages.NAME, NODE_READY, terminal=True),
        log_event("Pod Ready", "pod_ready", messages.NAME, pod_ready_regex(pod_namespace), terminal=True),
    ]


async def build_measurer(
    cfg: Optional[Settings] = None,
    imds: Optional[ImdsSource] = None,
    ec2_client: Any = None,
    core_v1: Any = None,
) -> Measurer:
    """Register the default sources available in this environment and the default events.

    Sources whose client is absent are skipped; the events bound to them are
    reported as registration failures in the log and left out of the run.
    """
    cfg = cfg or default_settings
    measurer = Measurer(metadata_provider=ImdsMetadataProvider(imds) if imds is not None else None)

    instance_id = ""
    if imds is not None:
        measurer.register_sources(imds)
        try:
            instance_id = str((await imds.identity_document()).get("instanceId") or "")
        except SourceError as exc:
            log.warning("unable to retrieve instance-id from IMDS: %s", exc)

    node_name = cfg.node_name
    if not node_name and imds is not None:
        try:
            node_name = await imds.hostname()
        except SourceError as exc:
            log.warning("node name is not configured and cannot be retrieved via EC2 IMDS: %s", exc)

    year: Optional[int] = None
    if ec2_client is not None:
        ec2 = Ec2Source(ec2_client, instance_id=instance_id, node_name=node_name)
        try:
            year = await ec2.launch_year()
        except SourceError as exc:
            log.warning("unable to describe instance to find its launch year: %s", exc)
        measurer.register_sources(ec2)

    if core_v1 is not None and cfg.pod_namespace:
        if node_name:
            measurer.register_sources(K8sSource(core_v1, node_name, cfg.pod_namespace))
        else:
            log.warning("unable to register K8s source because the node name is unknown")

    measurer.register_sources(
        MessagesSource(cfg.messages_path, year_instance_launched=year),
        AwsNodeSource(cfg.aws_node_path, year_instance_launched=year),
    )

    try:
        measurer.register_events(*default_events(measurer, cfg.pod_namespace))
    except EventRegistrationError as exc:
        log.warning("Unable to register %d default event(s):", len(exc.failures))
        for failure in exc.failures:
            log.warning("    %s", failure)
    return measurer
