from datasources.logsource import LogSource
from config import AWS_NODE_DEFAULT_PATH

NAME = "aws-node"


class AwsNodeSource(LogSource):
    """VPC CNI container logs written by the aws-node DaemonSet."""

    name = NAME
    default_path = AWS_NODE_DEFAULT_PATH
    timestamp_regex = r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}\.[0-9]+Z"
    timestamp_layout = "%Y-%m-%dT%H:%M:%S.%fZ"
