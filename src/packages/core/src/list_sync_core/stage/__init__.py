"""CSV staging for bulk imports."""
from list_sync_core.stage.render import render_csv
from list_sync_core.stage.storage import LocalArtifactStager, S3ArtifactStager

__all__ = ["render_csv", "LocalArtifactStager", "S3ArtifactStager"]
