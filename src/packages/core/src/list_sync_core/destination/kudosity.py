"""Kudosity (TransmitSMS) bulk contact import and list lookup."""
import json
import time
from typing import Any, Callable

import requests
import structlog

from list_sync_core.sync.collaborators import (
    ArtifactHandle,
    BulkImporter,
    ImportStatus,
    ListDirectory,
    ListInfo,
    SubmitResult,
)
from list_sync_core.util.errors import DestinationError
from list_sync_core.util.http import request_with_retries

logger = structlog.get_logger()

COMPLETE_STATUSES = ("complete", "completed")
MISSING_LIST_CODES = ("NOT_FOUND", "FIELD_INVALID", "LIST_NOT_FOUND")
POLL_RETRIES = 2


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class KudosityClient(BulkImporter, ListDirectory):
    """TransmitSMS REST client authenticated with HTTP basic auth."""

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = "https://api.transmitsms.com",
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not username or not password:
            raise ValueError("Kudosity username and password are not configured")
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self.session.headers.update({"Accept": "application/json"})

    def _call(
        self, method: str, endpoint: str, max_retries: int | None = None, **kwargs
    ) -> tuple[dict[str, Any], requests.Response]:
        """Call an endpoint and return its parsed body without checking error codes."""
        resp = request_with_retries(
            self.session,
            method,
            f"{self.base_url}/{endpoint}",
            error_cls=DestinationError,
            max_retries=self.max_retries if max_retries is None else max_retries,
            retry_delay=self.retry_delay,
            sleep=self.sleep,
            timeout=self.timeout,
            **kwargs,
        )
        text = resp.text.strip()
        if text.startswith("<") or "<html" in text[:200].lower():
            raise DestinationError(
                "Received an HTML response from Kudosity; check the API credentials"
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise DestinationError(f"Unexpected Kudosity response: {text[:100]}") from e
        if not isinstance(body, dict):
            raise DestinationError(f"Unexpected Kudosity response: {text[:100]}")
        return body, resp

    @staticmethod
    def _error_code(body: dict[str, Any]) -> str | None:
        error = body.get("error")
        if not error:
            return None
        if isinstance(error, dict):
            code = error.get("code") or "UNKNOWN"
            return None if code == "SUCCESS" else code
        return str(error)

    @staticmethod
    def _error_message(body: dict[str, Any]) -> str:
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("description") or error.get("code") or "Unknown API error"
        return str(error)

    def _checked(self, method: str, endpoint: str, **kwargs) -> dict[str, Any]:
        body, resp = self._call(method, endpoint, **kwargs)
        if self._error_code(body) is not None:
            raise DestinationError(f"Kudosity API error: {self._error_message(body)}")
        if not resp.ok:
            raise DestinationError(f"Kudosity API error {resp.status_code}: {resp.reason}")
        return body

    def submit(
        self,
        artifact: ArtifactHandle,
        list_id: str | None = None,
        list_name: str | None = None,
        columns: list[str] | None = None,
    ) -> SubmitResult:
        """Start a bulk import from a staged CSV URL."""
        if not list_id and not list_name:
            raise DestinationError("A destination list id or name is required")
        data: dict[str, Any] = {"file_url": artifact.url, "type": "csv"}
        if list_id:
            data["list_id"] = list_id
        else:
            data["list_name"] = list_name
        if columns:
            data["field_mappings"] = json.dumps({c: c for c in columns})

        body = self._checked("POST", "add-contacts-bulk.json", data=data)
        import_id = body.get("import_id")
        if not import_id:
            raise DestinationError("Kudosity accepted the upload but returned no import_id")
        reported = body.get("list_id") or (body.get("list") or {}).get("id")
        logger.info(
            "kudosity_import_submitted",
            import_id=import_id,
            list_id=list_id or reported,
            list_name=list_name,
            rows=artifact.row_count,
        )
        return SubmitResult(
            import_id=str(import_id),
            list_id=str(reported) if reported else list_id,
        )

    def poll_status(self, import_id: str) -> ImportStatus:
        body = self._checked(
            "POST",
            "add-contacts-bulk-progress.json",
            max_retries=POLL_RETRIES + 1,
            data={"import_id": import_id},
        )
        status = str(body.get("status") or "unknown").lower()
        list_id = body.get("list_id")
        return ImportStatus(
            status=status,
            processed=_to_int(body.get("processed")),
            total=_to_int(body.get("total")),
            errors=_to_int(body.get("errors")),
            complete=status in COMPLETE_STATUSES,
            error_details=body.get("error_details"),
            list_id=str(list_id) if list_id else None,
        )

    def resolve(self, list_id: str) -> ListInfo | None:
        """Look up a list by id; None when Kudosity does not know it."""
        body, resp = self._call("GET", "get-list.json", params={"list_id": list_id})
        code = self._error_code(body)
        if code in MISSING_LIST_CODES or resp.status_code == 404:
            return None
        if code is not None:
            raise DestinationError(f"Kudosity API error: {self._error_message(body)}")
        found = body.get("id") or list_id
        return ListInfo(id=str(found), name=str(body.get("name") or ""))

    def find_by_name(self, name: str) -> ListInfo | None:
        """Page through get-lists.json for a list with this name; the last match wins."""
        page = 1
        total_pages = 1
        match: ListInfo | None = None
        while page <= total_pages:
            body = self._checked("GET", "get-lists.json", params={"page": page})
            lists = body.get("lists")
            if not isinstance(lists, list):
                break
            for item in lists:
                if isinstance(item, dict) and item.get("name") == name:
                    match = ListInfo(id=str(item.get("id")), name=name)
            total_pages = _to_int(body.get("total_pages")) or total_pages
            page += 1
        if match is None:
            logger.info("kudosity_list_not_found", list_name=name, pages=page - 1)
        return match
