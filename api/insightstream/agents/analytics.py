from __future__ import annotations

import json
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd

from insightstream.ingest import column_type, rows_to_records
from insightstream.llm import LLMGateway

# Rows of the table sent to the model next to the summary.
# None = whole table; keep it small, prompts grow fast.
MAX_ROWS_FOR_LLM: Optional[int] = 20


def _safe_value_counts(series: pd.Series, top_n: Optional[int] = 5) -> Dict[str, int]:
    vc = series.fillna("(empty)").astype(str).value_counts()
    if top_n is not None:
        vc = vc.head(top_n)
    return {str(k): int(v) for k, v in vc.to_dict().items()}


def _round(val: Any) -> Optional[float]:
    if val is None or pd.isna(val):
        return None
    return round(float(val), 4)


def _column_summary(series: pd.Series) -> Dict[str, Any]:
    kind = column_type(series)
    out: Dict[str, Any] = {
        "type": kind,
        "missing": int(series.isna().sum()),
        "unique": int(series.nunique(dropna=True)),
    }
    if kind == "number" and series.notna().any():
        s = series.astype(float)
        out.update({
            "mean": _round(s.mean()),
            "std": _round(s.std()),
            "min": _round(s.min()),
            "median": _round(s.median()),
            "max": _round(s.max()),
        })
    else:
        out["top_values"] = _safe_value_counts(series, top_n=5)
    return out


def compute_dataset_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Summary handed to the model:
    - shape and duplicate count
    - per-column type, missing/unique counts, stats or top values
    - strongest numeric correlations
    - a few sample rows
    """
    if df.empty:
        return {"row_count": 0, "column_count": int(df.shape[1]), "columns": {}, "sample_rows": []}

    numeric = df.select_dtypes(include=[np.number])
    correlations: List[Dict[str, Any]] = []
    if numeric.shape[1] >= 2:
        corr = numeric.corr()
        cols = list(corr.columns)
        for i, a in enumerate(cols):
            for b in cols[i + 1:]:
                val = corr.loc[a, b]
                if pd.notna(val):
                    correlations.append({"a": str(a), "b": str(b), "r": round(float(val), 3)})
        correlations.sort(key=lambda c: abs(c["r"]), reverse=True)

    return {
        "row_count": int(len(df)),
        "column_count": int(df.shape[1]),
        "duplicate_rows": int(df.duplicated().sum()),
        "columns": {str(c): _column_summary(df[c]) for c in df.columns},
        "top_correlations": correlations[:5],
        "sample_rows": rows_to_records(df, limit=MAX_ROWS_FOR_LLM),
    }


_INSIGHTS_SYSTEM = (
    "You are a data analyst. You receive a JSON summary of a tabular dataset "
    "(row/column counts, per-column statistics, correlations and sample rows).\n"
    "Write 4-6 short bullet points with the most useful insights: data quality "
    "problems (missing values, duplicates, suspicious ranges), notable "
    "distributions and relationships, and one or two suggested next steps.\n"
    "Do not invent numbers; rely only on the JSON provided."
)

_QA_SYSTEM = (
    "You are a data analysis assistant. You receive the user's question and a "
    "JSON summary of their dataset (per-column statistics and sample rows).\n"
    "Answer briefly and clearly, with bullet points where useful. If the summary "
    "does not contain enough information to answer, say so instead of guessing."
)


def generate_insights(gateway: LLMGateway, df: pd.DataFrame, file_name: str = "") -> str:
    summary_json = json.dumps(compute_dataset_summary(df), ensure_ascii=False, default=str)
    return gateway.chat_completion(
        [
            {"role": "system", "content": _INSIGHTS_SYSTEM},
            {"role": "user", "content": f"Dataset: {file_name or '(unnamed)'}\n\nSummary (JSON):\n{summary_json}"},
        ],
        temperature=0.3,
    )


def answer_question(gateway: LLMGateway, df: pd.DataFrame, question: str) -> str:
    summary_json = json.dumps(compute_dataset_summary(df), ensure_ascii=False, default=str)
    return gateway.chat_completion(
        [
            {"role": "system", "content": _QA_SYSTEM},
            {"role": "user", "content": f"Question: {question}\n\nDataset summary (JSON):\n{summary_json}"},
        ],
        temperature=0.1,
    )
