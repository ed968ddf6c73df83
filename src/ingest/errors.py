"""Errors raised while ingesting scrobbles."""


class IngestError(Exception):
    """Base exception for ingestion errors."""


class SourceUnavailable(IngestError):
    """The track history source could not be reached or returned garbage."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source} unavailable: {message}")


class MalformedIdentifier(IngestError, ValueError):
    """An external id does not have the canonical MusicBrainz shape."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Malformed external id: {value!r}")


class DependencyUnresolved(IngestError):
    """A row references a parent that was never written."""

    def __init__(self, kind: str, key, missing: str, missing_key):
        self.kind = kind
        self.key = key
        self.missing = missing
        self.missing_key = missing_key
        super().__init__(f"Cannot write {kind} {key}: {missing} {missing_key} is unresolved")


class StoreWriteFailure(IngestError):
    """A single upsert/insert failed."""

    def __init__(self, kind: str, key, message: str, event_index: int | None = None):
        self.kind = kind
        self.key = key
        self.event_index = event_index
        self.reason = message
        where = f" (event #{event_index})" if event_index is not None else ""
        super().__init__(f"Failed to write {kind} {key}{where}: {message}")


class InvalidImportYear(IngestError, ValueError):
    def __init__(self, year: int, latest: int):
        self.year = year
        super().__init__(f"Invalid year {year}. Must be between 2002 and {latest}")
