import dataclasses

import pandas as pd
import pytest

from insightstream.conversation import ASSISTANT, USER, ConversationLog, DatasetRef, SessionStore


def _ref(store, name="a.csv", rows=3):
    entry = store.add(pd.DataFrame({"a": range(rows)}), name)
    return DatasetRef(data_id=entry.data_id, file_name=name, row_count=rows, column_count=1, headers=["a"])


def test_turns_are_immutable_and_ordered():
    log = ConversationLog()
    first = log.append(USER, "hi")
    log.append(ASSISTANT, "hello")
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.content = "changed"
    snapshot = log.turns
    log.append(USER, "more")
    assert len(snapshot) == 2
    assert [t.content for t in log.turns] == ["hi", "hello", "more"]
    assert log.to_list()[0]["role"] == "user"
    assert "timestamp" in log.to_list()[0]


def test_dataset_ref_round_trips_info():
    info = {"dataId": "d1", "fileName": "a.csv", "rowCount": 4, "columnCount": 1,
            "headers": ["a"], "columnTypes": {"a": "number"}, "preview": [{"a": 1}]}
    assert DatasetRef.from_info(info).to_info() == info


def test_attach_dataset_greets_and_replaces_previous(store):
    sessions = SessionStore(store)
    old = _ref(store, "old.csv")
    sessions.attach_dataset("s1", old)
    new = _ref(store, "new.csv", rows=7)
    session = sessions.attach_dataset("s1", new)

    assert session.dataset_ref is new
    assert old.data_id not in store
    assert new.data_id in store
    assert len(session.log) == 2
    assert session.log.last().content.startswith('Great! I\'ve loaded "new.csv" with 7 rows and 1 columns.')


def test_reset_drops_dataset_and_history(store):
    sessions = SessionStore(store)
    ref = _ref(store)
    sessions.attach_dataset("s1", ref)

    assert sessions.reset("s1") is True
    assert ref.data_id not in store
    assert sessions.get("s1") is None
    fresh = sessions.get_or_create("s1")
    assert len(fresh.log) == 0 and fresh.dataset_ref is None
    assert sessions.reset("missing") is False


def test_idle_sessions_expire(store, clock):
    sessions = SessionStore(store, ttl_seconds=100, clock=clock)
    sessions.get_or_create("s1")
    clock.advance(50)
    assert sessions.get("s1") is not None
    clock.advance(101)
    assert sessions.get("s1") is None


def test_current_dataset_drops_evicted_reference(store, clock):
    sessions = SessionStore(store, clock=clock)
    ref = _ref(store)
    session = sessions.attach_dataset("s1", ref)
    assert sessions.current_dataset(session) is ref

    clock.advance(61)
    assert sessions.current_dataset(session) is None
    assert session.dataset_ref is None
    assert len(session.log) == 1
