"""Tests for the Klaviyo, Kudosity and staging clients."""
import json

import pytest
import requests
from botocore.exceptions import ClientError

from fakes import FakeResponse, FakeSession, make_profiles
from list_sync_core.destination import KudosityClient
from list_sync_core.source import KlaviyoClient
from list_sync_core.stage import LocalArtifactStager, S3ArtifactStager, render_csv
from list_sync_core.sync import ArtifactHandle
from list_sync_core.util import DestinationError, ErrorKind, SourceError, StagingError


def _klaviyo(responses, **kwargs):
    session = FakeSession(responses)
    client = KlaviyoClient("pk_test", session=session, sleep=lambda _: None, **kwargs)
    return client, session


def _page(profiles, next_url=None):
    return FakeResponse(body={"data": profiles, "links": {"next": next_url}})


def test_klaviyo_sets_auth_headers():
    _, session = _klaviyo([])
    assert session.headers["Authorization"] == "Klaviyo-API-Key pk_test"
    assert session.headers["revision"] == "2023-10-15"


def test_klaviyo_fetch_skips_offset_across_pages():
    profiles = make_profiles(7)
    client, session = _klaviyo(
        [
            _page(profiles[0:3], "https://a.klaviyo.com/api/segments/S1/profiles?page[cursor]=b"),
            _page(profiles[3:6], "https://a.klaviyo.com/api/segments/S1/profiles?page[cursor]=c"),
            _page(profiles[6:7]),
        ],
        page_size=3,
    )
    records = client.fetch("segments", "S1", offset=2, count=3)
    assert [r["id"] for r in records] == ["p2", "p3", "p4"]
    assert len(session.calls) == 2
    assert session.calls[0]["params"] == {"page[size]": 3}
    assert session.calls[1]["params"] is None


def test_klaviyo_fetch_stops_at_end_of_collection():
    client, _ = _klaviyo([_page(make_profiles(2))])
    assert len(client.fetch("lists", "L1", offset=0, count=100)) == 2


def test_klaviyo_counts():
    client, session = _klaviyo(
        [
            FakeResponse(body={"data": {"attributes": {"name": "VIP", "profile_count": 12000}}}),
            FakeResponse(body={"data": []}, headers={"Klaviyo-Total-Count": "321"}),
            FakeResponse(body={"data": [], "meta": {"total": 9}}),
        ]
    )
    assert client.count("segments", "S1") == 12000
    assert session.calls[0]["params"] == {"additional-fields[segment]": "profile_count"}
    assert client.count("lists", "L1") == 321
    assert session.calls[1]["url"].endswith("/lists/L1/profiles")
    assert client.count("lists", "L2") == 9


def test_klaviyo_source_name():
    client, _ = _klaviyo([FakeResponse(body={"data": {"attributes": {"name": "Newsletter"}}})])
    assert client.source_name("lists", "L1") == "Newsletter"


def test_klaviyo_error_detail_is_surfaced():
    client, _ = _klaviyo(
        [FakeResponse(status_code=404, body={"errors": [{"detail": "Segment not found"}]})]
    )
    with pytest.raises(SourceError, match="Segment not found"):
        client.source_name("segments", "missing")


def test_klaviyo_retries_network_errors():
    client, session = _klaviyo(
        [requests.exceptions.ConnectionError("reset"), _page(make_profiles(1))]
    )
    assert len(client.fetch("lists", "L1", 0, 1)) == 1
    assert len(session.calls) == 2


def test_klaviyo_gives_up_after_retries():
    client, _ = _klaviyo([requests.exceptions.Timeout("slow")] * 3, max_retries=3)
    with pytest.raises(SourceError) as info:
        client.fetch("lists", "L1", 0, 1)
    assert info.value.kind == ErrorKind.NETWORK


def _kudosity(responses):
    session = FakeSession(responses)
    client = KudosityClient("user", "secret", session=session, sleep=lambda _: None)
    return client, session


ARTIFACT = ArtifactHandle(location="mem://a.csv", url="https://files.example.com/a.csv", row_count=3)


def test_kudosity_submit_by_name():
    client, session = _kudosity(
        [FakeResponse(body={"import_id": 991, "list_id": 55, "error": {"code": "SUCCESS"}})]
    )
    result = client.submit(ARTIFACT, list_name="VIP (Import)", columns=["mobile", "first_name"])
    assert (result.import_id, result.list_id) == ("991", "55")
    call = session.calls[0]
    assert call["url"] == "https://api.transmitsms.com/add-contacts-bulk.json"
    assert call["data"]["list_name"] == "VIP (Import)"
    assert "list_id" not in call["data"]
    assert call["data"]["file_url"] == ARTIFACT.url
    assert json.loads(call["data"]["field_mappings"]) == {"mobile": "mobile", "first_name": "first_name"}
    assert session.auth == ("user", "secret")


def test_kudosity_rejects_html_and_api_errors():
    client, _ = _kudosity(
        [
            FakeResponse(status_code=401, text="<!DOCTYPE html><html>login</html>"),
            FakeResponse(body={"error": {"code": "AUTH_FAILED", "description": "Bad key"}}),
        ]
    )
    with pytest.raises(DestinationError, match="HTML"):
        client.submit(ARTIFACT, list_id="L1")
    with pytest.raises(DestinationError, match="Bad key"):
        client.submit(ARTIFACT, list_id="L1")


def test_kudosity_poll_status():
    client, _ = _kudosity(
        [
            FakeResponse(body={"status": "Completed", "processed": "100", "total": "100", "errors": "5"}),
            FakeResponse(body={"status": "failed", "error_details": "Invalid file"}),
        ]
    )
    done = client.poll_status("991")
    assert done.complete and done.terminal and not done.failed
    assert (done.processed, done.total, done.errors) == (100, 100, 5)
    failed = client.poll_status("992")
    assert failed.failed
    assert failed.error_details == "Invalid file"


def test_kudosity_poll_retries_twice():
    client, session = _kudosity(
        [
            requests.exceptions.ConnectionError("a"),
            requests.exceptions.ConnectionError("b"),
            FakeResponse(body={"status": "processing"}),
        ]
    )
    assert not client.poll_status("991").terminal
    assert len(session.calls) == 3


def test_kudosity_resolve():
    client, _ = _kudosity(
        [
            FakeResponse(body={"id": 55, "name": "VIPs", "error": {"code": "SUCCESS"}}),
            FakeResponse(status_code=400, body={"error": {"code": "FIELD_INVALID"}}),
        ]
    )
    info = client.resolve("55")
    assert (info.id, info.name) == ("55", "VIPs")
    assert client.resolve("404") is None


def test_kudosity_find_by_name_pages():
    client, session = _kudosity(
        [
            FakeResponse(body={"lists": [{"id": 1, "name": "Other"}], "total_pages": 2}),
            FakeResponse(body={"lists": [{"id": 2, "name": "VIP (Import)"}], "total_pages": 2}),
        ]
    )
    assert client.find_by_name("VIP (Import)").id == "2"
    assert [c["params"]["page"] for c in session.calls] == [1, 2]


def test_render_csv_keeps_column_order():
    content = render_csv(
        [{"first_name": "Ann", "mobile": "+61400111222"}, {"mobile": "+61400111333"}],
        ["mobile", "first_name"],
    )
    assert content.splitlines() == ["mobile,first_name", "+61400111222,Ann", "+61400111333,"]


def test_render_csv_refuses_empty_batch():
    with pytest.raises(StagingError):
        render_csv([], ["mobile"])


def test_local_stager_writes_file(tmp_path):
    stager = LocalArtifactStager(tmp_path / "exports", "https://files.example.com/exports/")
    handle = stager.stage([{"mobile": "+61400111222"}], ["mobile"], "import_j_chunk_0")
    assert handle.url == "https://files.example.com/exports/import_j_chunk_0.csv"
    assert handle.row_count == 1
    assert (tmp_path / "exports" / "import_j_chunk_0.csv").read_text().startswith("mobile")


class FakeS3:
    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.objects[(Bucket, Key)] = Body

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://s3.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


def test_s3_stager_uploads_and_presigns():
    s3 = FakeS3()
    stager = S3ArtifactStager("kudosity-imports", client=s3, expires_in=600)
    handle = stager.stage([{"mobile": "+61400111222"}], ["mobile"], "import_j_chunk_1")
    assert handle.location == "s3://kudosity-imports/imports/import_j_chunk_1.csv"
    assert handle.url.endswith("imports/import_j_chunk_1.csv?expires=600")
    assert s3.objects[("kudosity-imports", "imports/import_j_chunk_1.csv")].startswith(b"mobile")


def test_s3_stager_wraps_client_errors():
    stager = S3ArtifactStager("kudosity-imports", client=FakeS3(fail=True))
    with pytest.raises(StagingError, match="AccessDenied"):
        stager.stage([{"mobile": "+61400111222"}], ["mobile"], "x")
