"""Job and chunk models."""
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    RETRIEVING = "retrieving"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    IMPORTING = "importing"
    MONITORING = "monitoring"
    COMPLETE = "complete"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    ERROR = "error"


class ChunkStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    IMPORTING = "importing"
    MONITORING = "monitoring"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = (
    JobStatus.COMPLETE,
    JobStatus.COMPLETED_WITH_ERRORS,
    JobStatus.ERROR,
)
TERMINAL_CHUNK_STATUSES = (ChunkStatus.COMPLETED, ChunkStatus.FAILED)
IN_FLIGHT_CHUNK_STATUSES = (
    ChunkStatus.PROCESSING,
    ChunkStatus.UPLOADING,
    ChunkStatus.IMPORTING,
)


class SourceType(str, Enum):
    SEGMENTS = "segments"
    LISTS = "lists"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class Job(_Model):
    """One synchronization request."""

    id: str
    status: JobStatus = JobStatus.PENDING
    source_type: SourceType
    source_id: str
    source_name: str = ""
    destination_id: str | None = None
    destination_name: str | None = None
    field_mappings: dict[str, str] = Field(default_factory=dict)
    chunk_size: int = 5000
    total_chunks: int = 0
    completed_chunks: int = 0
    failed_chunks: int = 0
    total_profiles: int = 0
    processed_profiles: int = 0
    success_profiles: int = 0
    error_profiles: int = 0
    skipped_profiles: int = 0
    count_known: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    error_message: str | None = None


class Chunk(_Model):
    """One bounded slice of a job's source records."""

    id: str
    import_id: str
    index: int
    status: ChunkStatus = ChunkStatus.PENDING
    start_offset: int
    end_offset: int
    profiles_count: int
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    attempts: int = 0
    artifact_location: str | None = None
    destination_import_id: str | None = None
    resolved_destination_list_id: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    updated_at: str | None = None
    error_message: str | None = None
    error_kind: str | None = None


class JobCreateRequest(_Model):
    """Input for creating a job."""

    source_type: SourceType
    source_id: str
    destination_id: str | None = None
    destination_name: str | None = None
    field_mappings: dict[str, str] = Field(default_factory=dict)
    chunk_size: int | None = None


class ChunkSummary(_Model):
    id: str
    index: int
    status: ChunkStatus
    profiles_count: int
    success_count: int
    error_count: int
    skipped_count: int
    start_offset: int
    end_offset: int
    destination_import_id: str | None = None
    resolved_destination_list_id: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    error_message: str | None = None
    error_kind: str | None = None
    suggestion: str | None = None


class ChunkCounts(_Model):
    total: int
    completed: int
    failed: int
    processing: int
    pending: int
    monitoring: int


class ProfileCounts(_Model):
    total: int
    processed: int
    success: int
    error: int
    skipped: int


class ProgressBlock(_Model):
    overall_percent: int
    profile_percent: int
    chunks: ChunkCounts
    profiles: ProfileCounts


class JobProgress(_Model):
    """Everything a polling client needs to render a job."""

    id: str
    status: JobStatus
    source_type: SourceType
    source_id: str
    source_name: str
    destination_id: str | None = None
    destination_name: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    count_known: bool = True
    error_message: str | None = None
    progress: ProgressBlock
    chunks: list[ChunkSummary]

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
