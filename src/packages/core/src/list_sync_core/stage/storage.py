"""Artifact stagers: somewhere the destination can download a CSV from."""
from pathlib import Path
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from list_sync_core.stage.render import render_csv
from list_sync_core.sync.collaborators import ArtifactHandle, ArtifactStager
from list_sync_core.util.errors import StagingError

logger = structlog.get_logger()


def _file_name(name: str) -> str:
    return name if name.endswith(".csv") else f"{name}.csv"


class LocalArtifactStager(ArtifactStager):
    """Write CSVs into a directory served at public_base_url."""

    def __init__(self, directory: str | Path, public_base_url: str | None = None):
        self.directory = Path(directory)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def stage(
        self, records: list[dict[str, Any]], columns: list[str], name: str
    ) -> ArtifactHandle:
        content = render_csv(records, columns)
        path = self.directory / _file_name(name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StagingError(f"Failed to write {path}: {e}") from e

        if self.public_base_url:
            url = f"{self.public_base_url}/{path.name}"
        else:
            url = path.resolve().as_uri()
        logger.info("artifact_staged", location=str(path), rows=len(records))
        return ArtifactHandle(location=str(path), url=url, row_count=len(records))


class S3ArtifactStager(ArtifactStager):
    """Upload CSVs to S3 and hand out presigned download URLs."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "imports",
        expires_in: int = 86400,
        client=None,
        region: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
    ):
        if not bucket or not bucket.strip():
            raise ValueError("S3 bucket is not configured")
        self.bucket = bucket.strip()
        self.prefix = prefix.strip("/")
        self.expires_in = expires_in
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
        )

    def _key(self, name: str) -> str:
        file_name = _file_name(name)
        return f"{self.prefix}/{file_name}" if self.prefix else file_name

    def stage(
        self, records: list[dict[str, Any]], columns: list[str], name: str
    ) -> ArtifactHandle:
        content = render_csv(records, columns)
        key = self._key(name)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content.encode("utf-8"),
                ContentType="text/csv",
            )
            url = self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("artifact_upload_failed", bucket=self.bucket, key=key, error=str(e))
            raise StagingError(f"Failed to upload s3://{self.bucket}/{key}: {e}") from e
        logger.info("artifact_staged", location=f"s3://{self.bucket}/{key}", rows=len(records))
        return ArtifactHandle(
            location=f"s3://{self.bucket}/{key}", url=url, row_count=len(records)
        )
