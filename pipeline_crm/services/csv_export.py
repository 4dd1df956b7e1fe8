"""CSV serialization of rows the client has already fetched."""

import csv
import io
import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any


def rows_to_csv(rows: Sequence[Mapping[str, Any]], columns: Sequence[str] | None = None) -> str:
    """Serialize dict rows to CSV text with a header line.

    Args:
        rows: Rows to write.
        columns: Column order; defaults to the keys of the first row.

    Returns:
        CSV text. Empty when there are no rows and no columns.
    """
    fieldnames = list(columns) if columns else list(rows[0].keys()) if rows else []
    if not fieldnames:
        return ""

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        row_copy = dict(row)
        for key, value in row_copy.items():
            if isinstance(value, (dict, list)):
                row_copy[key] = json.dumps(value)
        writer.writerow(row_copy)
    return output.getvalue()


def build_csv_download(
    rows: Sequence[Mapping[str, Any]],
    prefix: str,
    columns: Sequence[str] | None = None,
) -> dict[str, str]:
    """Package rows as a timestamped CSV download.

    Returns:
        Dict with filename, content and content_type.
    """
    return {
        "filename": f"{prefix}_export_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S')}.csv",
        "content": rows_to_csv(rows, columns),
        "content_type": "text/csv",
    }
