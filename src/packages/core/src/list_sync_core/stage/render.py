"""CSV rendering for staged contact batches."""
from typing import Any

import pandas as pd

from list_sync_core.util.errors import StagingError


def render_csv(records: list[dict[str, Any]], columns: list[str]) -> str:
    """Render records as CSV with exactly the given columns, in order."""
    if not records:
        raise StagingError("Cannot stage an empty batch of contacts")
    if not columns:
        raise StagingError("Cannot stage contacts without columns")
    rows = [{c: record.get(c) for c in columns} for record in records]
    df = pd.DataFrame(rows, columns=columns, dtype=object)
    return df.to_csv(index=False)
