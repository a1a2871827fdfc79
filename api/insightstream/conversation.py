from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from insightstream.store import DatasetStore

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message exchanged between the user and the assistant."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp.isoformat()}


class ConversationLog:
    """Append-only, chronologically ordered list of turns."""

    def __init__(self):
        self._turns: List[Turn] = []
        self._lock = threading.Lock()

    def append(self, role: str, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        with self._lock:
            self._turns.append(turn)
        return turn

    @property
    def turns(self) -> Tuple[Turn, ...]:
        with self._lock:
            return tuple(self._turns)

    def last(self) -> Optional[Turn]:
        with self._lock:
            return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def to_list(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.turns]


@dataclass
class DatasetRef:
    """Server-held handle plus the metadata the UI renders for an uploaded table."""

    data_id: str
    file_name: str
    row_count: int
    column_count: int
    headers: List[str] = field(default_factory=list)
    column_types: Dict[str, str] = field(default_factory=dict)
    preview: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_info(cls, info: Dict[str, Any]) -> "DatasetRef":
        return cls(
            data_id=info["dataId"],
            file_name=info.get("fileName", ""),
            row_count=int(info.get("rowCount", 0)),
            column_count=int(info.get("columnCount", 0)),
            headers=list(info.get("headers") or []),
            column_types=dict(info.get("columnTypes") or {}),
            preview=list(info.get("preview") or []),
        )

    def to_info(self) -> Dict[str, Any]:
        return {
            "dataId": self.data_id,
            "fileName": self.file_name,
            "rowCount": self.row_count,
            "columnCount": self.column_count,
            "headers": list(self.headers),
            "columnTypes": dict(self.column_types),
            "preview": list(self.preview),
        }


@dataclass
class Session:
    session_id: str
    log: ConversationLog = field(default_factory=ConversationLog)
    dataset_ref: Optional[DatasetRef] = None
    # held by the HTTP layer around handle_message so turns land in send order
    lock: threading.Lock = field(default_factory=threading.Lock)
    touched_at: float = 0.0


class SessionStore:
    """
    Sessions keyed by the client-provided session id.  Resetting a session
    drops its dataset from the DatasetStore and starts a fresh log.
    """

    def __init__(self, datasets: DatasetStore, ttl_seconds: int = 3600, clock=time.monotonic):
        self.datasets = datasets
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float):
        if self.ttl_seconds <= 0:
            return
        for sid in [s for s, sess in self._sessions.items() if now - sess.touched_at > self.ttl_seconds]:
            self._drop_dataset(self._sessions.pop(sid))

    def _drop_dataset(self, session: Session):
        if session.dataset_ref is not None:
            self.datasets.delete(session.dataset_ref.data_id)
            session.dataset_ref = None

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            now = self._clock()
            self._purge(now)
            session = self._sessions.get(session_id)
            if session is not None:
                session.touched_at = now
            return session

    def get_or_create(self, session_id: str) -> Session:
        with self._lock:
            now = self._clock()
            self._purge(now)
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self._sessions[session_id] = session
            session.touched_at = now
            return session

    def attach_dataset(self, session_id: str, ref: DatasetRef) -> Session:
        session = self.get_or_create(session_id)
        with session.lock:
            if session.dataset_ref is not None and session.dataset_ref.data_id != ref.data_id:
                self.datasets.delete(session.dataset_ref.data_id)
            session.dataset_ref = ref
            session.log.append(
                ASSISTANT,
                f'Great! I\'ve loaded "{ref.file_name}" with {ref.row_count} rows and '
                f"{ref.column_count} columns. How can I help you analyze this data?",
            )
        return session

    def current_dataset(self, session: Session) -> Optional[DatasetRef]:
        """The session's dataset, or None once the DatasetStore has expired or evicted it."""
        ref = session.dataset_ref
        if ref is not None and ref.data_id not in self.datasets:
            logger.info("Session %s lost dataset %s to eviction", session.session_id, ref.data_id)
            session.dataset_ref = None
        return session.dataset_ref

    def reset(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        with session.lock:
            self._drop_dataset(session)
        return True
