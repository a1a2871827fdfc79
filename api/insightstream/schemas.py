from __future__ import annotations
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    model_config = ConfigDict(json_schema_extra={"example": {"question": "What is a pivot table?"}})
    question: str = Field(..., min_length=1)


class AskResponse(BaseModel):
    success: bool
    question: str
    answer: str


class IntentRequest(BaseModel):
    model_config = ConfigDict(json_schema_extra={"example": {"command": "remove duplicate rows"}})
    command: str


class ChatTurnIn(BaseModel):
    role: str
    content: str


class LLMChatRequest(BaseModel):
    messages: List[ChatTurnIn] = Field(default_factory=list)


class DataRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    data_id: str = Field(..., alias="dataId")


class ProcessRequest(DataRequest):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"dataId": "3f2c...", "command": "remove outliers from column price"}},
    )
    command: str = Field(..., min_length=1)


class DataAskRequest(DataRequest):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"dataId": "3f2c...", "question": "Which city has the most rows?"}},
    )
    question: str = Field(..., min_length=1)


class RowUpdateRequest(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class ChatMessageRequest(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"sessionId": "s1", "message": "fill missing values in age"}},
    )
    session_id: str = Field(default="s1", alias="sessionId")
    message: str = Field(..., min_length=1)


class TurnOut(BaseModel):
    role: str
    content: str
    timestamp: str


class HistoryResponse(BaseModel):
    session_id: str = Field(..., serialization_alias="sessionId")
    turns: List[TurnOut]
    dataset: Optional[Dict[str, Any]] = None
