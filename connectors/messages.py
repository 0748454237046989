from datasources.logsource import LogSource
from config import MESSAGES_DEFAULT_PATH

NAME = "Messages"


class MessagesSource(LogSource):
    """/var/log/messages (syslog) source."""

    name = NAME
    default_path = MESSAGES_DEFAULT_PATH
    timestamp_regex = r"[A-Z][a-z]+[ ]+[0-9][0-9]? [0-9]{2}:[0-9]{2}:[0-9]{2}"
    timestamp_layout = "%b %d %H:%M:%S %Y"
