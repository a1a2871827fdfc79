from __future__ import annotations
import io, re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from insightstream.errors import UploadError

ALLOWED_SUFFIXES = {".csv", ".txt"}

_DATE_LIKE = re.compile(r"^\s*(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4})([ T]\d{1,2}:\d{2}(:\d{2})?)?\s*$")


def read_csv_upload(raw: bytes, file_name: str) -> pd.DataFrame:
    """Parse an uploaded CSV body. Anything that is not a non-empty CSV is an UploadError."""
    suf = Path(file_name or "").suffix.lower()
    if suf not in ALLOWED_SUFFIXES:
        raise UploadError("Please upload a .csv file")
    if not raw or not raw.strip():
        raise UploadError("The uploaded file is empty.")
    try:
        df = pd.read_csv(io.BytesIO(raw))
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise UploadError(f"Could not read CSV: {e}") from e
    if df.empty:
        raise UploadError("The CSV file has no data rows.")
    return df


def column_type(series: pd.Series) -> str:
    if pd.api.types.is_bool_dtype(series):
        return "boolean"
    if pd.api.types.is_numeric_dtype(series):
        return "number"
    if pd.api.types.is_datetime64_any_dtype(series):
        return "date"
    values = series.dropna().astype(str)
    if len(values) and values.map(lambda v: bool(_DATE_LIKE.match(v))).mean() >= 0.9:
        return "date"
    return "string"


def _json_value(val: Any) -> Any:
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(val, pd.Timestamp):
        return val.isoformat()
    return val.item() if hasattr(val, "item") else val


def rows_to_records(df: pd.DataFrame, offset: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    DataFrame -> list[dict] that json.dumps accepts: NaN becomes None and
    numpy scalars become Python scalars.
    """
    part = df.iloc[offset:] if limit is None else df.iloc[offset:offset + limit]
    return [
        {str(col): _json_value(val) for col, val in row.items()}
        for _, row in part.iterrows()
    ]


def describe_dataset(data_id: str, file_name: str, df: pd.DataFrame, preview_rows: int = 10) -> Dict[str, Any]:
    headers = [str(c) for c in df.columns]
    return {
        "dataId": data_id,
        "fileName": file_name,
        "rowCount": int(len(df)),
        "columnCount": len(headers),
        "headers": headers,
        "columnTypes": {str(c): column_type(df[c]) for c in df.columns},
        "preview": rows_to_records(df, limit=preview_rows),
    }


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")
