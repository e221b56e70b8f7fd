"""Klaviyo segment and list profile source."""
import time
from typing import Any, Callable

import requests
import structlog

from list_sync_core.sync.collaborators import SourceRecordProvider
from list_sync_core.util.errors import SourceError, ValidationError
from list_sync_core.util.http import request_with_retries

logger = structlog.get_logger()

SOURCE_TYPES = ("segments", "lists")


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return "; ".join(
            str(e.get("detail") or e.get("title") or e) for e in errors if isinstance(e, dict)
        ) or str(errors)
    return resp.reason or str(resp.status_code)


class KlaviyoClient(SourceRecordProvider):
    """Reads profiles from Klaviyo segments and lists over the JSON:API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://a.klaviyo.com/api",
        revision: str = "2023-10-15",
        page_size: int = 100,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValueError("Klaviyo API key is not configured")
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Klaviyo-API-Key {api_key}",
                "revision": revision,
                "Accept": "application/json",
            }
        )

    def _collection_url(self, source_type: str, source_id: str) -> str:
        if source_type not in SOURCE_TYPES:
            raise ValidationError(f"Unsupported source type: {source_type}")
        return f"{self.base_url}/{source_type}/{source_id}"

    def _get(self, url: str, params: dict[str, Any] | None = None) -> requests.Response:
        resp = request_with_retries(
            self.session,
            "GET",
            url,
            error_cls=SourceError,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            sleep=self.sleep,
            params=params,
            timeout=self.timeout,
        )
        if not resp.ok:
            raise SourceError(f"Klaviyo API error {resp.status_code}: {_error_detail(resp)}")
        return resp

    def _json(self, resp: requests.Response) -> dict[str, Any]:
        try:
            return resp.json()
        except ValueError as e:
            raise SourceError(f"Klaviyo returned a non-JSON response: {e}") from e

    def source_name(self, source_type: str, source_id: str) -> str:
        data = self._json(self._get(self._collection_url(source_type, source_id)))
        attributes = (data.get("data") or {}).get("attributes") or {}
        return attributes.get("name") or source_id

    def count(self, source_type: str, source_id: str) -> int:
        """Profile count of a segment or list."""
        url = self._collection_url(source_type, source_id)
        if source_type == "segments":
            resp = self._get(url, params={"additional-fields[segment]": "profile_count"})
            attributes = (self._json(resp).get("data") or {}).get("attributes") or {}
            if attributes.get("profile_count") is not None:
                return int(attributes["profile_count"])
            raise SourceError(f"Klaviyo did not report a profile count for segment {source_id}")

        resp = self._get(f"{url}/profiles", params={"page[size]": 1})
        header = resp.headers.get("Klaviyo-Total-Count")
        if header is not None:
            return int(header)
        meta = self._json(resp).get("meta") or {}
        if meta.get("total") is not None:
            return int(meta["total"])
        raise SourceError(f"Klaviyo did not report a profile count for list {source_id}")

    def fetch(
        self, source_type: str, source_id: str, offset: int, count: int
    ) -> list[dict[str, Any]]:
        """Walk the cursor pages, skipping offset records and keeping count."""
        if count <= 0:
            return []
        url: str | None = f"{self._collection_url(source_type, source_id)}/profiles"
        params: dict[str, Any] | None = {"page[size]": self.page_size}
        skipped = 0
        records: list[dict[str, Any]] = []
        pages = 0

        while url and len(records) < count:
            body = self._json(self._get(url, params=params))
            pages += 1
            page = body.get("data") or []
            if skipped + len(page) <= offset:
                skipped += len(page)
            else:
                start = max(0, offset - skipped)
                skipped = offset
                records.extend(page[start : start + count - len(records)])
            # The next link already carries the cursor and page size.
            url = (body.get("links") or {}).get("next")
            params = None

        logger.info(
            "klaviyo_profiles_fetched",
            source_type=source_type,
            source_id=source_id,
            offset=offset,
            requested=count,
            fetched=len(records),
            pages=pages,
        )
        return records
