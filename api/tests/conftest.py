import os

# keep the event log off Redis for the whole test run
os.environ["SAVE_LOGS"] = "false"

import io
from typing import Any, Dict, List

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from insightstream.config import Config, LLMConfig, StorageConfig
from insightstream.llm import LLMGateway
from insightstream.main import create_app
from insightstream.store import DatasetStore


class FakeGateway(LLMGateway):
    """
    Gateway whose chat_completion replays queued replies (or raises queued
    exceptions) and records every call.  With an empty queue it answers "ok".
    """

    def __init__(self, replies=None):
        super().__init__(LLMConfig(base_url="http://llm.test/v1", api_key="test-key", model="fake-model"))
        self.replies: List[Any] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def chat_completion(self, messages, temperature=None, system_extra=None, max_tokens=None):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class Clock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


def make_frame() -> pd.DataFrame:
    """100 rows; column X holds 92 values in [10, 20] and 8 extreme outliers."""
    xs = [10 + (i % 11) for i in range(92)] + [1000] * 8
    cities = ["Hanoi", "Paris", "Lima", "Oslo"]
    return pd.DataFrame({
        "id": list(range(1, 101)),
        "X": xs,
        "city": [cities[i % 4] for i in range(100)],
    })


def to_csv(df: pd.DataFrame) -> bytes:
    buf = io.StringIO()
    df.to_csv(buf, index=False)
    return buf.getvalue().encode("utf-8")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config() -> Config:
    return Config(
        llm=LLMConfig(base_url="http://llm.test/v1", api_key="test-key", model="fake-model"),
        storage=StorageConfig(dataset_ttl_seconds=3600, session_ttl_seconds=3600, max_datasets=10, preview_rows=5),
    )


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(clock) -> DatasetStore:
    return DatasetStore(ttl_seconds=60, max_entries=3, clock=clock)


@pytest.fixture
def frame() -> pd.DataFrame:
    return make_frame()


@pytest.fixture
def csv_bytes(frame) -> bytes:
    return to_csv(frame)


@pytest.fixture
def app(config, gateway):
    return create_app(config=config, gateway=gateway)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def uploaded(client, csv_bytes) -> Dict[str, Any]:
    r = client.post(
        "/api/data/upload",
        files={"file": ("sales.csv", csv_bytes, "text/csv")},
        data={"sessionId": "s1"},
    )
    assert r.status_code == 200, r.text
    return r.json()
