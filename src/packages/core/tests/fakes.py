"""In-memory collaborators for sync tests."""
import json
from typing import Any

from list_sync_core.sync.collaborators import (
    ArtifactHandle,
    ArtifactStager,
    BulkImporter,
    ImportStatus,
    ListDirectory,
    ListInfo,
    SourceRecordProvider,
    SubmitResult,
)
from list_sync_core.util import SourceError, StagingError


def make_profiles(n: int, start: int = 0, with_phone: bool = True) -> list[dict[str, Any]]:
    """Klaviyo-shaped profiles with sequential ids."""
    profiles = []
    for i in range(start, start + n):
        attributes = {
            "email": f"user{i}@example.com",
            "first_name": f"User{i}",
            "location": {"city": "Sydney"},
        }
        if with_phone:
            attributes["phone_number"] = f"+6140{i:07d}"
        profiles.append({"type": "profile", "id": f"p{i}", "attributes": attributes})
    return profiles


class FakeSource(SourceRecordProvider):
    def __init__(
        self,
        profiles: list[dict[str, Any]],
        name: str = "VIP Segment",
        fail_offsets: tuple[int, ...] = (),
        count_fails: bool = False,
        reported_count: int | None = None,
    ):
        self.profiles = profiles
        self.name = name
        self.fail_offsets = set(fail_offsets)
        self.count_fails = count_fails
        self.reported_count = reported_count
        self.fetches: list[tuple[int, int]] = []

    def fetch(self, source_type, source_id, offset, count):
        self.fetches.append((offset, count))
        if offset in self.fail_offsets:
            raise SourceError(f"Klaviyo API error 500 at offset {offset}")
        return [dict(p) for p in self.profiles[offset : offset + count]]

    def count(self, source_type, source_id):
        if self.count_fails:
            raise SourceError("Klaviyo count unavailable")
        if self.reported_count is not None:
            return self.reported_count
        return len(self.profiles)

    def source_name(self, source_type, source_id):
        return self.name


class FakeStager(ArtifactStager):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.staged: list[dict[str, Any]] = []

    def stage(self, records, columns, name):
        if self.fail:
            raise StagingError("Bucket kudosity-imports is not accessible")
        if not records:
            raise StagingError("Cannot stage an empty batch of contacts")
        self.staged.append({"name": name, "records": list(records), "columns": list(columns)})
        return ArtifactHandle(
            location=f"mem://{name}.csv",
            url=f"https://files.example.com/{name}.csv",
            row_count=len(records),
        )


class FakeImporter(BulkImporter):
    """Bulk importer whose imports finish on the first poll unless told otherwise.

    ``errors`` maps a submission number (0-based) to the error count it
    reports; ``failing`` holds submission numbers whose import fails.
    """

    def __init__(
        self,
        created_list_id: str = "list-new",
        errors: dict[int, int] | None = None,
        failing: tuple[int, ...] = (),
        never_finish: bool = False,
        report_list_id: bool = True,
    ):
        self.created_list_id = created_list_id
        self.errors = errors or {}
        self.failing = set(failing)
        self.never_finish = never_finish
        self.report_list_id = report_list_id
        self.submissions: list[dict[str, Any]] = []
        self.polls = 0
        self._rows: dict[str, tuple[int, int]] = {}

    def submit(self, artifact, list_id=None, list_name=None, columns=None):
        n = len(self.submissions)
        self.submissions.append(
            {"url": artifact.url, "list_id": list_id, "list_name": list_name, "columns": columns}
        )
        import_id = f"imp-{n}"
        self._rows[import_id] = (n, artifact.row_count)
        reported = list_id or (self.created_list_id if self.report_list_id else None)
        return SubmitResult(import_id=import_id, list_id=reported)

    def finish(self, import_id: str) -> None:
        """Let a never-finishing import complete on its next poll."""
        self.never_finish = False

    def poll_status(self, import_id):
        self.polls += 1
        n, rows = self._rows[import_id]
        if self.never_finish:
            return ImportStatus(status="processing", processed=rows // 2, total=rows)
        if n in self.failing:
            return ImportStatus(
                status="failed", total=rows, error_details="Invalid file format"
            )
        return ImportStatus(
            status="completed",
            processed=rows,
            total=rows,
            errors=self.errors.get(n, 0),
            complete=True,
        )


class FakeDirectory(ListDirectory):
    def __init__(self, lists: dict[str, str] | None = None):
        self.lists = dict(lists or {})

    def resolve(self, list_id):
        if list_id in self.lists:
            return ListInfo(id=list_id, name=self.lists[list_id])
        return None

    def find_by_name(self, name):
        for list_id, list_name in self.lists.items():
            if list_name == name:
                return ListInfo(id=list_id, name=name)
        return None


class FakeResponse:
    """Just enough of requests.Response for the HTTP clients."""

    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body if body is not None else {})
        self.headers = headers or {}
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            return json.loads(self.text)
        return self._body


class FakeSession:
    """Replays queued responses; an Exception in the queue is raised instead."""

    def __init__(self, responses: list):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.headers: dict[str, str] = {}
        self.auth = None

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
