from __future__ import annotations
"""
Dataset operations behind the ``/api/data`` routes and the chat dispatcher:
upload, cleaning commands, insights, questions, download and table edits.
Everything is keyed by the opaque dataId handed out at upload time.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from insightstream.agents.analytics import answer_question, generate_insights
from insightstream.agents.cleaning import clean_dataset
from insightstream.errors import InvalidRequestError
from insightstream.ingest import describe_dataset, read_csv_upload, rows_to_records, to_csv_bytes
from insightstream.llm import LLMGateway
from insightstream.redis_store import log_event
from insightstream.store import DatasetEntry, DatasetStore

logger = logging.getLogger(__name__)


def _set_cell(frame: pd.DataFrame, idx: int, col: Any, value: Any):
    s = frame[col]
    if isinstance(value, str) and pd.api.types.is_numeric_dtype(s) and not pd.api.types.is_bool_dtype(s):
        try:
            value = pd.to_numeric(value)
        except (ValueError, TypeError):
            pass
    vals = s.astype(object).tolist()
    vals[idx] = value
    frame[col] = pd.Series(vals, index=frame.index, dtype=object).infer_objects()


class DataService:
    def __init__(self, store: DatasetStore, gateway: LLMGateway, preview_rows: int = 10):
        self.store = store
        self.gateway = gateway
        self.preview_rows = preview_rows

    def info(self, entry: DatasetEntry) -> Dict[str, Any]:
        return describe_dataset(entry.data_id, entry.file_name, entry.frame, self.preview_rows)

    def upload(self, raw: bytes, file_name: str) -> Dict[str, Any]:
        df = read_csv_upload(raw, file_name)
        entry = self.store.add(df, file_name)
        log_event(entry.data_id, "upload", {"filename": file_name, "rows": entry.row_count})
        logger.info("Loaded %s as %s (%d rows)", file_name, entry.data_id, entry.row_count)
        return {
            "success": True,
            "message": "File uploaded successfully",
            "dataId": entry.data_id,
            "info": self.info(entry),
        }

    def describe(self, data_id: str, offset: int = 0, limit: Optional[int] = None) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        return {
            "success": True,
            "dataId": data_id,
            "info": self.info(entry),
            "rows": rows_to_records(entry.frame, offset=offset, limit=limit),
        }

    def process_command(self, data_id: str, command: str) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        outcome, steps = clean_dataset(self.gateway, entry.frame, command)
        entry = self.store.update(data_id, outcome.frame)
        result = {
            "rowsBefore": outcome.rows_before,
            "rowsAfter": outcome.rows_after,
            "rowsChanged": outcome.rows_changed,
            "steps": list(outcome.applied),
        }
        log_event(data_id, "process_command", {
            "command": command,
            "plan": [s.to_dict() for s in steps],
            "skipped": outcome.skipped,
            **result,
        })
        return {
            "success": True,
            "explanation": outcome.explanation(),
            "result": result,
            "info": self.info(entry),
        }

    def get_insights(self, data_id: str) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        insights = generate_insights(self.gateway, entry.frame, entry.file_name)
        log_event(data_id, "insights", {"chars": len(insights)})
        return {"success": True, "insights": insights}

    def ask_question(self, data_id: str, question: str) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        answer = answer_question(self.gateway, entry.frame, question)
        log_event(data_id, "ask", {"question": question, "answer": answer})
        return {"success": True, "answer": answer}

    def download(self, data_id: str) -> Tuple[bytes, str]:
        entry = self.store.get(data_id)
        return to_csv_bytes(entry.frame), f"cleaned_{entry.file_name or 'data.csv'}"

    def delete(self, data_id: str) -> bool:
        # raises DatasetNotFoundError for unknown ids
        self.store.get(data_id)
        log_event(data_id, "delete", {})
        return self.store.delete(data_id)

    def _row_index(self, entry: DatasetEntry, row_index: int) -> int:
        if row_index < 0 or row_index >= len(entry.frame):
            raise InvalidRequestError(f"Row {row_index} is out of range (0-{len(entry.frame) - 1})")
        return row_index

    def update_row(self, data_id: str, row_index: int, values: Dict[str, Any]) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        idx = self._row_index(entry, row_index)
        unknown = [k for k in values if k not in entry.frame.columns]
        if unknown:
            raise InvalidRequestError(f"Unknown column(s): {', '.join(unknown)}")
        frame = entry.frame.copy()
        for col, val in values.items():
            _set_cell(frame, idx, col, val)
        entry = self.store.update(data_id, frame)
        log_event(data_id, "update_row", {"row": idx, "values": values})
        return {"success": True, "info": self.info(entry)}

    def delete_row(self, data_id: str, row_index: int) -> Dict[str, Any]:
        entry = self.store.get(data_id)
        idx = self._row_index(entry, row_index)
        frame = entry.frame.drop(index=entry.frame.index[idx]).reset_index(drop=True)
        entry = self.store.update(data_id, frame)
        log_event(data_id, "delete_row", {"row": idx})
        return {"success": True, "info": self.info(entry)}
