from __future__ import annotations
from fastapi import Request

from insightstream.conversation import SessionStore
from insightstream.data_service import DataService
from insightstream.dispatch import Dispatcher
from insightstream.llm import LLMGateway


def get_gateway(request: Request) -> LLMGateway:
    return request.app.state.gateway

def get_data_service(request: Request) -> DataService:
    return request.app.state.data_service

def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions

def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
