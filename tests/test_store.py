from __future__ import annotations

import logging

import pytest

from seerdb.state import INITIAL_STATE, StateStore, ViewState, create_store
from seerdb.state.actions import ExportData, SetInfo, SetView, StartLoading


def test_dispatch_replaces_state_and_notifies() -> None:
    store = create_store()
    seen: list[tuple[ViewState, object]] = []
    store.subscribe(lambda state, action: seen.append((state.current_view, action)))

    action = SetView(ViewState.TABLES)
    result = store.dispatch(action)

    assert result is store.state
    assert store.get_state().current_view is ViewState.TABLES
    assert seen == [(ViewState.TABLES, action)]


def test_unhandled_action_does_not_notify() -> None:
    store = StateStore()
    calls: list[object] = []
    store.subscribe(lambda state, action: calls.append(action))

    store.dispatch(ExportData("csv"))

    assert store.state is INITIAL_STATE
    assert calls == []


def test_unsubscribe_stops_notifications() -> None:
    store = StateStore()
    calls: list[object] = []
    unsubscribe = store.subscribe(lambda state, action: calls.append(action))

    unsubscribe()
    store.dispatch(StartLoading())

    assert calls == []
    assert store.state.loading


def test_listener_failure_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    store = StateStore()
    received: list[str | None] = []

    def broken(state, action) -> None:
        raise ValueError("boom")

    store.subscribe(broken)
    store.subscribe(lambda state, action: received.append(state.info_message))

    with caplog.at_level(logging.ERROR, logger="seerdb.state.store"):
        store.dispatch(SetInfo("hello"))

    assert received == ["hello"]
    assert "State listener failed" in caplog.text


def test_dispatch_from_reducer_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    store = StateStore()
    from seerdb.state import store as store_module

    def reentrant(state, action):
        store.dispatch(StartLoading())
        return state

    monkeypatch.setattr(store_module, "reduce", reentrant)

    with pytest.raises(RuntimeError, match="re-entered"):
        store.dispatch(StartLoading())

    monkeypatch.undo()
    store.dispatch(StartLoading())
    assert store.state.loading


def test_listener_may_dispatch_follow_up_actions() -> None:
    store = StateStore()

    def follow_up(state, action) -> None:
        if isinstance(action, StartLoading):
            store.dispatch(SetInfo("loading"))

    store.subscribe(follow_up)
    store.dispatch(StartLoading())

    assert store.state.loading
    assert store.state.info_message == "loading"
