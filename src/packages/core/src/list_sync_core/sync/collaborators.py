"""Interfaces for the services a sync job talks to."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ArtifactHandle:
    """A staged file the destination can fetch."""

    location: str
    url: str
    row_count: int


@dataclass(frozen=True)
class SubmitResult:
    import_id: str
    list_id: str | None = None


@dataclass(frozen=True)
class ImportStatus:
    """Bulk import progress as reported by the destination."""

    status: str
    processed: int = 0
    total: int = 0
    errors: int = 0
    complete: bool = False
    error_details: str | None = None
    list_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.status in ("error", "failed")

    @property
    def terminal(self) -> bool:
        return self.complete or self.failed


@dataclass(frozen=True)
class ListInfo:
    id: str
    name: str


class SourceRecordProvider(ABC):
    """Offset-addressable access to a source profile collection."""

    @abstractmethod
    def fetch(
        self, source_type: str, source_id: str, offset: int, count: int
    ) -> list[dict[str, Any]]:
        """Fetch up to count records starting at offset."""

    @abstractmethod
    def count(self, source_type: str, source_id: str) -> int:
        """Number of records in the collection."""

    @abstractmethod
    def source_name(self, source_type: str, source_id: str) -> str:
        """Display name of the collection."""


class ArtifactStager(ABC):
    @abstractmethod
    def stage(
        self, records: list[dict[str, Any]], columns: list[str], name: str
    ) -> ArtifactHandle:
        """Write records to a retrievable artifact; fails on zero records."""


class BulkImporter(ABC):
    @abstractmethod
    def submit(
        self,
        artifact: ArtifactHandle,
        list_id: str | None = None,
        list_name: str | None = None,
        columns: list[str] | None = None,
    ) -> SubmitResult:
        """Start a bulk import into a list, creating it when only a name is given."""

    @abstractmethod
    def poll_status(self, import_id: str) -> ImportStatus:
        """Current progress of a submitted import."""


class ListDirectory(ABC):
    @abstractmethod
    def resolve(self, list_id: str) -> ListInfo | None:
        """Look up a destination list by ID."""

    def find_by_name(self, name: str) -> ListInfo | None:
        """Look up a destination list by name; None when unknown or unsupported."""
        return None
