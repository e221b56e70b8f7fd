"""Job and chunk identifiers."""
import uuid


def generate_id() -> str:
    """Random job ID."""
    return str(uuid.uuid4())


def make_chunk_id(job_id: str, index: int) -> str:
    """Stable chunk ID; a re-planned job reuses the IDs of its replaced chunks."""
    return f"{job_id}-{index:05d}"
