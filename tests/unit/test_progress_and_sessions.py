"""Unit tests for the progress tracker, session registry and session providers."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from karaoke_scout.models.events import (
    CredentialsRequestedEvent,
    PercentEvent,
    ProgressEventAdapter,
    StatusEvent,
)
from karaoke_scout.models.targets import Credentials, SessionState
from karaoke_scout.pipeline.progress_tracker import ALL_RUNS, ProgressTracker
from karaoke_scout.pipeline.session_registry import SessionRegistry
from karaoke_scout.providers.session.cookie_file_store import CookieFileStore, sanitize_cookie
from karaoke_scout.providers.session.interactive_channel import InteractiveCredentialChannel

_COOKIE = {"name": "c_user", "value": "1", "domain": ".facebook.com", "path": "/"}


# ======================================================================
# ProgressTracker
# ======================================================================


class TestProgressTracker:
    def test_status_and_percent_recorded(self, tracker: ProgressTracker) -> None:
        tracker.status("run-1", "Scraping 2 source(s)", stage="scrape")
        tracker.percent("run-1", 1, 2, floor=0.0, span=30.0)

        status = tracker.get_status("run-1")
        assert status == {"percent": 15.0, "message": "Scraping 2 source(s)", "stage": "scrape"}

    def test_percent_clamped_and_zero_total(self, tracker: ProgressTracker) -> None:
        tracker.percent("run-1", 5, 0, floor=90.0, span=50.0)
        assert tracker.get_status("run-1")["percent"] == 100.0

    def test_unknown_run(self, tracker: ProgressTracker) -> None:
        assert tracker.get_status("nope") == {"percent": 0.0, "message": "", "stage": None}

    def test_listeners_scoped_by_run(self, tracker: ProgressTracker) -> None:
        mine: list = []
        every: list = []
        tracker.register_listener("run-1", mine.append)
        tracker.register_listener(ALL_RUNS, every.append)

        tracker.status("run-1", "a")
        tracker.status("run-2", "b")

        assert [e.message for e in mine] == ["a"]
        assert [e.message for e in every] == ["a", "b"]

    def test_unregister(self, tracker: ProgressTracker) -> None:
        seen: list = []
        tracker.register_listener("run-1", seen.append)
        tracker.unregister_listener("run-1", seen.append)
        tracker.status("run-1", "quiet")
        assert seen == []

    def test_failing_listener_does_not_break_publish(self, tracker: ProgressTracker) -> None:
        seen: list = []

        def _broken(event) -> None:  # noqa: ANN001
            raise RuntimeError("listener bug")

        tracker.register_listener("run-1", _broken)
        tracker.register_listener("run-1", seen.append)
        tracker.status("run-1", "still delivered")
        assert len(seen) == 1

    @pytest.mark.asyncio()
    async def test_async_listener_scheduled_not_awaited(self, tracker: ProgressTracker) -> None:
        seen: list = []
        gate = asyncio.Event()

        async def _slow(event) -> None:  # noqa: ANN001
            await gate.wait()
            seen.append(event)

        tracker.register_listener("run-1", _slow)
        tracker.status("run-1", "hello")
        assert seen == []
        gate.set()
        await tracker.drain()
        assert len(seen) == 1

    def test_events_round_trip_through_adapter(self) -> None:
        event = PercentEvent(run_id="r", percent=42.0, completed=2, total=5)
        decoded = ProgressEventAdapter.validate_json(event.model_dump_json())
        assert isinstance(decoded, PercentEvent)
        assert decoded.percent == 42.0
        assert isinstance(ProgressEventAdapter.validate_python({"kind": "status", "run_id": "r", "message": "m"}), StatusEvent)


# ======================================================================
# SessionRegistry
# ======================================================================


class _MemoryStore:
    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state
        self.loads = 0
        self.saved: list[SessionState] = []

    async def load(self, session_ref: str) -> SessionState | None:
        self.loads += 1
        return self.state

    async def save(self, state: SessionState) -> None:
        self.saved.append(state)


class TestSessionRegistry:
    @pytest.mark.asyncio()
    async def test_get_loads_from_store_once(self) -> None:
        store = _MemoryStore(SessionState(session_ref="fb", cookies=[_COOKIE]))
        registry = SessionRegistry(store)
        first = await registry.get("fb")
        second = await registry.get("fb")
        assert first is second
        assert store.loads == 1

    @pytest.mark.asyncio()
    async def test_get_without_store(self) -> None:
        assert await SessionRegistry().get("fb") is None

    @pytest.mark.asyncio()
    async def test_authenticate_records_and_saves(self) -> None:
        store = _MemoryStore()
        registry = SessionRegistry(store)

        async def _login() -> SessionState:
            return SessionState.verified("fb", [_COOKIE])

        state = await registry.authenticate("fb", _login)
        assert state is not None and state.is_verified
        assert await registry.get("fb") is state
        assert store.saved == [state]

    @pytest.mark.asyncio()
    async def test_concurrent_logins_run_once(self) -> None:
        registry = SessionRegistry()
        calls = 0

        async def _login() -> SessionState:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return SessionState.verified("fb", [_COOKIE])

        a, b = await asyncio.gather(
            registry.authenticate("fb", _login), registry.authenticate("fb", _login)
        )
        assert calls == 1
        assert a is b

    @pytest.mark.asyncio()
    async def test_stale_state_triggers_new_login(self) -> None:
        registry = SessionRegistry()
        old = await registry.authenticate("fb", _returning(SessionState.verified("fb", [_COOKIE])))
        fresh = SessionState.verified("fb", [{**_COOKIE, "value": "2"}])
        renewed = await registry.authenticate("fb", _returning(fresh), stale=old)
        assert renewed is fresh

    @pytest.mark.asyncio()
    async def test_failed_login_returns_none(self) -> None:
        registry = SessionRegistry()
        assert await registry.authenticate("fb", _returning(None)) is None
        assert await registry.get("fb") is None


def _returning(state: SessionState | None):  # noqa: ANN202
    async def _login() -> SessionState | None:
        return state

    return _login


# ======================================================================
# CookieFileStore
# ======================================================================


class TestSanitizeCookie:
    def test_browser_export_format(self) -> None:
        cookie = sanitize_cookie(
            {
                "name": "xs",
                "value": "abc",
                "domain": ".facebook.com",
                "expirationDate": 1900000000,
                "sameSite": "no_restriction",
                "hostOnly": False,
                "storeId": "0",
            }
        )
        assert cookie == {
            "name": "xs",
            "value": "abc",
            "domain": ".facebook.com",
            "expires": 1900000000.0,
            "sameSite": "None",
        }

    def test_unknown_same_site_dropped(self) -> None:
        assert "sameSite" not in sanitize_cookie({**_COOKIE, "sameSite": "unspecified"})

    def test_needs_name_and_location(self) -> None:
        assert sanitize_cookie({"value": "1", "domain": "x"}) is None
        assert sanitize_cookie({"name": "a", "value": "1"}) is None


class TestCookieFileStore:
    @pytest.mark.asyncio()
    async def test_save_then_load(self, tmp_path: Path) -> None:
        store = CookieFileStore(tmp_path / "cookies")
        state = SessionState.verified(
            "facebook", [_COOKIE], Credentials(username="me@example.com", password="hunter2")
        )
        await store.save(state)

        raw = (tmp_path / "cookies" / "facebook.json").read_text()
        assert "hunter2" not in raw and "me@example.com" not in raw

        loaded = await store.load("facebook")
        assert loaded is not None
        assert loaded.cookies == [_COOKIE]
        assert loaded.login_verified_at == state.login_verified_at
        assert loaded.credentials is None

    @pytest.mark.asyncio()
    async def test_bare_list_export(self, tmp_path: Path) -> None:
        (tmp_path / "fb.json").write_text(json.dumps([_COOKIE, {"junk": True}]))
        loaded = await CookieFileStore(tmp_path).load("fb")
        assert loaded.cookies == [_COOKIE]
        assert loaded.is_verified is False

    @pytest.mark.asyncio()
    async def test_missing_or_broken_file(self, tmp_path: Path) -> None:
        store = CookieFileStore(tmp_path)
        assert await store.load("absent") is None
        (tmp_path / "broken.json").write_text("{not json")
        assert await store.load("broken") is None

    def test_path_is_sanitized(self, tmp_path: Path) -> None:
        path = CookieFileStore(tmp_path).path_for("../../etc/passwd")
        assert path.parent == tmp_path
        assert "/" not in path.name


# ======================================================================
# InteractiveCredentialChannel
# ======================================================================


class TestInteractiveCredentialChannel:
    @pytest.mark.asyncio()
    async def test_request_answered_by_supply(self, tracker: ProgressTracker, events: list) -> None:
        channel = InteractiveCredentialChannel(tracker)
        creds = Credentials(username="me", password="pw")

        async def _answer() -> None:
            while not channel.pending():
                await asyncio.sleep(0)
            assert channel.supply("fb", creds) is True

        result, _ = await asyncio.gather(
            channel.request("fb", "https://www.facebook.com/groups/1", timeout=1.0), _answer()
        )
        assert result == creds
        requested = [e for e in events if isinstance(e, CredentialsRequestedEvent)]
        assert requested[0].session_ref == "fb"
        assert requested[0].timeout_s == 1.0
        assert channel.pending() == []

    @pytest.mark.asyncio()
    async def test_timeout_returns_none(self, tracker: ProgressTracker) -> None:
        channel = InteractiveCredentialChannel(tracker)
        assert await channel.request("fb", "https://x", timeout=0.01) is None
        assert channel.pending() == []
        assert channel.supply("fb", Credentials(username="late", password="pw")) is False

    @pytest.mark.asyncio()
    async def test_disabled_channel(self, tracker: ProgressTracker, events: list) -> None:
        channel = InteractiveCredentialChannel(tracker, enabled=False)
        assert channel.is_available() is False
        assert await channel.request("fb", "https://x", timeout=1.0) is None
        assert events == []

    @pytest.mark.asyncio()
    async def test_request_reaches_listener_of_its_run(self, tracker: ProgressTracker) -> None:
        channel = InteractiveCredentialChannel(tracker)
        mine: list = []
        other: list = []
        creds = Credentials(username="me", password="pw")

        def _answer(event) -> None:  # noqa: ANN001
            mine.append(event)
            if isinstance(event, CredentialsRequestedEvent):
                channel.supply(event.session_ref, creds)

        tracker.register_listener("run-7", _answer)
        tracker.register_listener("run-8", other.append)

        result = await channel.request("fb", "https://x", timeout=1.0, run_id="run-7")

        assert result == creds
        assert [e.run_id for e in mine] == ["run-7"]
        assert other == []

    def test_supply_without_request(self, tracker: ProgressTracker) -> None:
        channel = InteractiveCredentialChannel(tracker)
        assert channel.supply("fb", Credentials(username="a", password="b")) is False
