from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from insightstream.errors import ParseError
from insightstream.llm import LLMGateway, extract_json

logger = logging.getLogger(__name__)


class StepSkipped(Exception):
    pass


@dataclass
class CleaningStep:
    operation: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"operation": self.operation, "params": dict(self.params)}


@dataclass
class CleaningOutcome:
    frame: pd.DataFrame
    rows_before: int
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def rows_after(self) -> int:
        return int(len(self.frame))

    @property
    def rows_changed(self) -> int:
        return self.rows_before - self.rows_after

    def explanation(self) -> str:
        if not self.applied:
            lines = ["I couldn't apply any cleaning step to your data."]
        else:
            n = len(self.applied)
            lines = [f"I applied {n} cleaning step{'s' if n != 1 else ''} to your data:"]
            lines += [f"- {a}" for a in self.applied]
        if self.skipped:
            lines.append("")
            lines.append("Skipped:")
            lines += [f"- {s}" for s in self.skipped]
        lines.append("")
        delta = self.rows_changed
        lines.append(
            f"Rows: {self.rows_before} -> {self.rows_after}"
            + (f" ({delta} removed)." if delta > 0 else " (no rows removed).")
        )
        return "\n".join(lines)


# ===== Column helpers =====

def _resolve_column(df: pd.DataFrame, name: Any) -> str:
    if name is None:
        raise StepSkipped("no column given")
    wanted = str(name).strip().lower()
    for c in df.columns:
        if str(c).strip().lower() == wanted:
            return c
    raise StepSkipped(f"column '{name}' does not exist")


def _target_columns(df: pd.DataFrame, params: Dict[str, Any], default: List[Any]) -> List[Any]:
    col = params.get("column")
    cols = params.get("columns")
    if col:
        if isinstance(col, (list, tuple)):
            cols = col
        else:
            return [_resolve_column(df, col)]
    if cols:
        if isinstance(cols, str):
            cols = [cols]
        if not isinstance(cols, (list, tuple)):
            raise StepSkipped(f"invalid column list {cols!r}")
        return [_resolve_column(df, c) for c in cols]
    return default


def _text_columns(df: pd.DataFrame) -> List[Any]:
    return [c for c in df.columns if df[c].dtype == "O" or pd.api.types.is_string_dtype(df[c])]


def _numeric_columns(df: pd.DataFrame) -> List[Any]:
    return [c for c in df.select_dtypes(include=[np.number]).columns if not pd.api.types.is_bool_dtype(df[c])]


def mentioned_columns(command: str, df: pd.DataFrame) -> List[Any]:
    lower = (command or "").lower()
    return [
        c for c in df.columns
        if re.search(r"(?<![\w])" + re.escape(str(c).lower()) + r"(?![\w])", lower)
    ]


# ===== Operations: (df, params) -> (df, description) =====

def _drop_duplicates(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    subset = _target_columns(df, params, default=[]) or None
    out = df.drop_duplicates(subset=subset).reset_index(drop=True)
    removed = len(df) - len(out)
    return out, f"Removed {removed} duplicate row{'s' if removed != 1 else ''}"


def _drop_nulls(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    subset = _target_columns(df, params, default=[]) or None
    out = df.dropna(subset=subset).reset_index(drop=True)
    removed = len(df) - len(out)
    where = f" in {', '.join(repr(str(c)) for c in subset)}" if subset else ""
    return out, f"Removed {removed} row{'s' if removed != 1 else ''} with missing values{where}"


def _fill_value(series: pd.Series, strategy: str, value: Any) -> Tuple[Any, str]:
    numeric = pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)
    if strategy == "value":
        return value, "a fixed value"
    if strategy in ("mean", "median") and numeric:
        fill = series.mean() if strategy == "mean" else series.median()
        return fill, strategy
    if strategy == "auto" and numeric:
        return series.median(), "median"
    mode = series.mode(dropna=True)
    if mode.empty:
        raise StepSkipped(f"'{series.name}' has no values to fill from")
    return mode.iloc[0], "most frequent value"


def _fill_nulls(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    strategy = str(params.get("strategy") or ("value" if "value" in params else "auto")).lower()
    if strategy not in ("auto", "mean", "median", "mode", "value"):
        strategy = "auto"
    if strategy == "value" and params.get("value") is None:
        raise StepSkipped("strategy 'value' needs a value")
    cols = _target_columns(df, params, default=[c for c in df.columns if df[c].isna().any()])
    out = df.copy()
    filled = 0
    parts: List[str] = []
    for c in cols:
        missing = int(out[c].isna().sum())
        if not missing:
            continue
        try:
            fill, how = _fill_value(out[c], strategy, params.get("value"))
        except StepSkipped:
            continue
        out[c] = out[c].fillna(fill)
        filled += missing
        parts.append(f"'{c}' ({how})")
    if not filled:
        return out, "Found no missing values to fill"
    return out, f"Filled {filled} missing value{'s' if filled != 1 else ''} in " + ", ".join(parts)


def _remove_outliers(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    cols = _target_columns(df, params, default=_numeric_columns(df))
    raw_factor = params.get("factor")
    try:
        factor = 1.5 if raw_factor in (None, "") else float(raw_factor)
    except (TypeError, ValueError):
        raise StepSkipped(f"invalid IQR factor {raw_factor!r}")
    if not np.isfinite(factor) or factor <= 0:
        raise StepSkipped(f"invalid IQR factor {raw_factor!r}")
    keep = pd.Series(True, index=df.index)
    used: List[str] = []
    for c in cols:
        s = pd.to_numeric(df[c], errors="coerce")
        if s.notna().sum() < 4:
            continue
        q1, q3 = s.quantile(0.25), s.quantile(0.75)
        iqr = q3 - q1
        lo, hi = q1 - factor * iqr, q3 + factor * iqr
        keep &= s.isna() | s.between(lo, hi)
        used.append(str(c))
    if not used:
        raise StepSkipped("no numeric column to check for outliers")
    out = df[keep].reset_index(drop=True)
    removed = len(df) - len(out)
    return out, (
        f"Removed {removed} row{'s' if removed != 1 else ''} with outliers in "
        + ", ".join(f"'{c}'" for c in used)
        + f" (outside {factor:g} x IQR)"
    )


def _standardize_text(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    text_cols = _text_columns(df)
    cols = _target_columns(df, params, default=text_cols)
    not_text = [c for c in cols if c not in text_cols]
    if not_text and len(not_text) == len(cols):
        raise StepSkipped(f"column '{not_text[0]}' is not text")
    cols = [c for c in cols if c in text_cols]
    case = str(params.get("case") or "lower").lower()
    out = df.copy()
    for c in cols:
        s = out[c]
        mask = s.notna()
        text = s[mask].astype(str).str.strip().str.replace(r"\s+", " ", regex=True)
        if case == "lower":
            text = text.str.lower()
        elif case == "upper":
            text = text.str.upper()
        elif case == "title":
            text = text.str.title()
        out.loc[mask, c] = text
    if not cols:
        return out, "Found no text columns to standardize"
    how = {"lower": ", lowercased", "upper": ", uppercased", "title": ", title-cased"}.get(case, "")
    return out, f"Standardized text (trimmed whitespace{how}) in " + ", ".join(f"'{c}'" for c in cols)


def _snake(name: Any) -> str:
    s = re.sub(r"[^\w]+", "_", str(name).strip())
    s = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", s)
    return re.sub(r"_+", "_", s).strip("_").lower() or str(name)


def _standardize_columns(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    mapping = {c: _snake(c) for c in df.columns}
    renamed = {k: v for k, v in mapping.items() if k != v}
    if len(set(mapping.values())) != len(mapping):
        raise StepSkipped("standardized column names would collide")
    return df.rename(columns=renamed), f"Renamed {len(renamed)} column{'s' if len(renamed) != 1 else ''} to snake_case"


def _drop_column(df: pd.DataFrame, params: Dict[str, Any]) -> Tuple[pd.DataFrame, str]:
    col = _resolve_column(df, params.get("column"))
    return df.drop(columns=[col]), f"Dropped column '{col}'"


OPERATIONS: Dict[str, Callable[[pd.DataFrame, Dict[str, Any]], Tuple[pd.DataFrame, str]]] = {
    "drop_duplicates": _drop_duplicates,
    "drop_nulls": _drop_nulls,
    "fill_nulls": _fill_nulls,
    "remove_outliers": _remove_outliers,
    "standardize_text": _standardize_text,
    "standardize_columns": _standardize_columns,
    "drop_column": _drop_column,
}


# ===== Planning =====

_PLANNER_SYSTEM = """You turn a user's data cleaning request into a list of atomic operations.

Available operations and their params:
- drop_duplicates: {} or {"column": "col"}
- drop_nulls: {} or {"column": "col"}
- fill_nulls: {"column": "col" (optional), "strategy": "auto|mean|median|mode|value", "value": ... (only for strategy=value)}
- remove_outliers: {} or {"column": "col"}, optional "factor" (IQR multiplier, default 1.5)
- standardize_text: {} or {"column": "col"}, optional "case": "lower|upper|title|none"
- standardize_columns: {}
- drop_column: {"column": "col"}

Use only the columns listed. Steps run in order.
Respond with ONLY valid JSON:
{"steps": [{"operation": "op_name", "params": {...}}]}
"""


def _schema_for_prompt(df: pd.DataFrame) -> Dict[str, Any]:
    return {
        "rows": int(len(df)),
        "columns": {str(c): {"dtype": str(df[c].dtype), "missing": int(df[c].isna().sum())} for c in df.columns},
    }


def parse_plan(raw: str) -> List[CleaningStep]:
    obj = extract_json(raw)
    items = obj.get("steps") if isinstance(obj, dict) else None
    if not isinstance(items, list):
        raise ParseError("Plan has no 'steps' list")
    steps: List[CleaningStep] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        op = str(item.get("operation") or "").strip().lower()
        params = item.get("params") if isinstance(item.get("params"), dict) else {}
        if op in OPERATIONS:
            steps.append(CleaningStep(op, params))
    if not steps:
        raise ParseError("Plan contains no supported operation")
    return steps


def heuristic_plan(command: str, df: pd.DataFrame) -> List[CleaningStep]:
    """Keyword plan used when the model's plan is unusable."""
    lower = (command or "").lower()
    cols = [str(c) for c in mentioned_columns(lower, df)]
    steps: List[CleaningStep] = []

    def with_cols(params: Dict[str, Any]) -> Dict[str, Any]:
        if cols:
            params["columns"] = cols
        return params

    if "duplicate" in lower:
        steps.append(CleaningStep("drop_duplicates"))
    if "outlier" in lower:
        steps.append(CleaningStep("remove_outliers", with_cols({})))
    if "fill" in lower:
        strategy = next((s for s in ("mean", "median", "mode") if s in lower), "auto")
        steps.append(CleaningStep("fill_nulls", with_cols({"strategy": strategy})))
    if "standardize" in lower:
        if "column name" in lower or "header" in lower:
            steps.append(CleaningStep("standardize_columns"))
        else:
            steps.append(CleaningStep("standardize_text", with_cols({})))
    if any(w in lower for w in ("remove", "drop", "delete")) and any(
        w in lower for w in ("null", "missing", "empty", "blank", "nan")
    ):
        steps.append(CleaningStep("drop_nulls", with_cols({})))
    if not steps:
        steps = [CleaningStep("drop_duplicates")]
        if "clean" in lower:
            steps += [CleaningStep("standardize_text"), CleaningStep("drop_nulls")]
    return steps


def plan_cleaning(gateway: LLMGateway, df: pd.DataFrame, command: str) -> List[CleaningStep]:
    raw = gateway.chat_completion(
        [
            {"role": "system", "content": _PLANNER_SYSTEM},
            {
                "role": "user",
                "content": f"Request: {command}\n\nDataset schema (JSON):\n"
                + json.dumps(_schema_for_prompt(df), ensure_ascii=False),
            },
        ],
        temperature=0.0,
    )
    try:
        return parse_plan(raw)
    except ParseError as e:
        logger.info("Falling back to keyword cleaning plan for %r: %s", command, e)
        return heuristic_plan(command, df)


def apply_steps(df: pd.DataFrame, steps: List[CleaningStep]) -> CleaningOutcome:
    outcome = CleaningOutcome(frame=df, rows_before=int(len(df)))
    for step in steps:
        fn = OPERATIONS.get(step.operation)
        if fn is None:
            outcome.skipped.append(f"{step.operation}: unsupported operation")
            continue
        try:
            outcome.frame, desc = fn(outcome.frame, dict(step.params))
        except StepSkipped as e:
            outcome.skipped.append(f"{step.operation}: {e}")
            continue
        except (ValueError, TypeError, KeyError) as e:
            # the message can quote cell values, keep it out of the reply
            logger.warning("Cleaning step %s failed with params %r: %s", step.operation, step.params, e)
            outcome.skipped.append(f"{step.operation}: could not be applied with the given parameters")
            continue
        outcome.applied.append(desc)
    return outcome


def clean_dataset(gateway: LLMGateway, df: pd.DataFrame, command: str) -> Tuple[CleaningOutcome, List[CleaningStep]]:
    steps = plan_cleaning(gateway, df, command)
    return apply_steps(df, steps), steps
