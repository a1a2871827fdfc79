from __future__ import annotations
"""
Command/question dispatch for chat messages.

A message is a *command* when its lowercase form contains one of the command
keywords; it then goes to the dataset mutation path.  Anything else is a
*question* and goes to the question answering path.  Both paths append to the
session's conversation log and return a ``MessageResult`` the UI can render
without caring which path ran.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

from insightstream.config import DEFAULT_COMMAND_KEYWORDS
from insightstream.conversation import ASSISTANT, USER, ConversationLog, DatasetRef
from insightstream.errors import DownstreamError, InsightStreamError, NoDatasetError

logger = logging.getLogger(__name__)

COMMAND_KEYWORDS = tuple(DEFAULT_COMMAND_KEYWORDS)

APOLOGY = "Sorry, I encountered an error processing your request. Please try again."

ROUTE_COMMAND = "command"
ROUTE_QUESTION = "question"


@dataclass(frozen=True)
class DispatchDecision:
    is_command: bool
    matched_keyword: Optional[str] = None


def classify_message(message: str, keywords: Iterable[str] = COMMAND_KEYWORDS) -> DispatchDecision:
    """Plain substring test on the lowercased message; the first keyword that matches wins."""
    lower = (message or "").lower()
    for kw in keywords:
        if kw.lower() in lower:
            return DispatchDecision(is_command=True, matched_keyword=kw)
    return DispatchDecision(is_command=False)


@dataclass
class MessageResult:
    success: bool
    route: str
    reply: str
    row_count: Optional[int] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "route": self.route,
            "reply": self.reply,
            "rowCount": self.row_count,
            "result": self.result,
            "error": self.error,
        }


class Dispatcher:
    """
    Routes chat messages.  ``service`` must provide
    ``process_command(data_id, command) -> dict`` returning
    ``{success, explanation, result: {rowsBefore, rowsAfter, rowsChanged}}`` and
    ``ask_question(data_id, question) -> dict`` returning ``{success, answer}``.
    """

    def __init__(self, service: Any, keywords: Sequence[str] = COMMAND_KEYWORDS):
        self.service = service
        self.keywords = tuple(keywords)

    def handle_message(self, message: str, dataset_ref: Optional[DatasetRef], log: ConversationLog) -> MessageResult:
        if dataset_ref is None or not dataset_ref.data_id:
            raise NoDatasetError("Please upload a dataset first")

        log.append(USER, message)
        decision = classify_message(message, self.keywords)
        route = ROUTE_COMMAND if decision.is_command else ROUTE_QUESTION

        try:
            if decision.is_command:
                return self._run_command(message, dataset_ref, log)
            return self._run_question(message, dataset_ref, log)
        except Exception as e:
            # the log only ever gets the fixed apology, never the error text
            err = e if isinstance(e, InsightStreamError) else DownstreamError(str(e))
            logger.exception("Message handling failed on %s path for dataset %s", route, dataset_ref.data_id)
            log.append(ASSISTANT, APOLOGY)
            return MessageResult(
                success=False,
                route=route,
                reply=APOLOGY,
                row_count=dataset_ref.row_count,
                error={"kind": DownstreamError.__name__, "message": err.message},
            )

    def _run_command(self, message: str, ref: DatasetRef, log: ConversationLog) -> MessageResult:
        res = self.service.process_command(ref.data_id, message)
        _require_success(res)
        try:
            block = res["result"]
            rows_after = int(block["rowsAfter"])
            explanation = str(res["explanation"])
        except (KeyError, TypeError, ValueError) as e:
            raise DownstreamError(f"Malformed command result: {e}") from e

        ref.row_count = rows_after
        info = res.get("info")
        if isinstance(info, dict):
            ref.preview = list(info.get("preview") or ref.preview)
            ref.headers = list(info.get("headers") or ref.headers)
            ref.column_types = dict(info.get("columnTypes") or ref.column_types)
            ref.column_count = int(info.get("columnCount", ref.column_count))

        log.append(ASSISTANT, explanation)
        return MessageResult(success=True, route=ROUTE_COMMAND, reply=explanation, row_count=rows_after, result=block)

    def _run_question(self, message: str, ref: DatasetRef, log: ConversationLog) -> MessageResult:
        res = self.service.ask_question(ref.data_id, message)
        _require_success(res)
        answer = res.get("answer") if isinstance(res, dict) else None
        if not isinstance(answer, str):
            raise DownstreamError("Malformed question result: missing answer")
        log.append(ASSISTANT, answer)
        return MessageResult(success=True, route=ROUTE_QUESTION, reply=answer, row_count=ref.row_count)


def _require_success(res: Any):
    if not isinstance(res, dict):
        raise DownstreamError("Downstream returned no result")
    if not res.get("success"):
        raise DownstreamError(str(res.get("error") or res.get("message") or "Downstream operation failed"))
