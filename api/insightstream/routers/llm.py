from __future__ import annotations
"""
Direct LLM endpoints: free-form questions, intent analysis and multi-turn
chat.  None of them touch a dataset.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from insightstream.deps import get_gateway
from insightstream.errors import DownstreamError
from insightstream.llm import LLMGateway
from insightstream.schemas import AskRequest, AskResponse, IntentRequest, LLMChatRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/llm", tags=["llm"])


def _failed(e: DownstreamError) -> JSONResponse:
    logger.error("LLM call failed: %s", e.message)
    return JSONResponse(status_code=500, content={"success": False, "error": e.message})


@router.post("/ask", response_model=AskResponse)
def ask(req: AskRequest, gateway: LLMGateway = Depends(get_gateway)):
    try:
        answer = gateway.generate(req.question)
    except DownstreamError as e:
        return _failed(e)
    return {"success": True, "question": req.question, "answer": answer}


@router.post("/intent")
def intent(req: IntentRequest, gateway: LLMGateway = Depends(get_gateway)):
    try:
        result = gateway.classify_intent(req.command)
    except DownstreamError as e:
        return _failed(e)
    return {"success": True, "intent": result}


@router.post("/chat")
def chat(req: LLMChatRequest, gateway: LLMGateway = Depends(get_gateway)):
    # EmptyHistoryError goes to the app-level handler (400)
    try:
        reply = gateway.chat_with_context([m.model_dump() for m in req.messages])
    except DownstreamError as e:
        return _failed(e)
    return {"success": True, "response": reply}
