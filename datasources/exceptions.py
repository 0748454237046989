# datasources/exceptions.py

class SourceError(Exception):
    pass


class SourceUnavailable(SourceError):
    pass


class QueryTimeout(SourceUnavailable):
    pass


class NoMatch(SourceError):
    pass


class TimestampUnparseable(SourceError):
    pass
