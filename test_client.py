"""
Tests for the RoastTemp client library.

Tests cover:
- Capture/submit state machine and its in-flight guard
- History store cap, ordering, delete and clear
- Settings persistence
- API client error mapping
- Key-value stores
- Display helpers
"""

import asyncio
import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.dirname(__file__))
from main import app
from conftest import DARK_ROAST_JSON, FakeUpstream
from client.api_client import AnalysisApiClient, AnalysisRequestError
from client.capture_session import (
    CaptureSession, CapturedImage, FeedbackType, Failed, Idle, ImageSelected,
    ImpactStyle, Submitting, Succeeded,
)
from client.display import (
    celsius_to_fahrenheit, format_history_date, format_temperature, roast_color,
)
from client.history_store import HISTORY_KEY, HistoryEntry, HistoryStore
from client.settings_store import SETTINGS_KEY, Settings, SettingsStore
from client.storage import JsonFileStore, MemoryStore
from services.response_extractor import AnalysisResult

DARK_RESULT = AnalysisResult(**DARK_ROAST_JSON)


def make_entry(entry_id: str) -> HistoryEntry:
    return HistoryEntry(id=entry_id, imageBase64="abc", date="2025-03-04T09:30:00+00:00", **DARK_ROAST_JSON)


class RecordingHaptics:
    def __init__(self):
        self.events = []

    def impact(self, style):
        self.events.append(style)

    def notify(self, feedback):
        self.events.append(feedback)


class RecordingNavigator:
    def __init__(self):
        self.shown = []

    def show_result(self, image, result):
        self.shown.append((image, result))


class GatedAnalyzer:
    """Analyzer whose reply is held until the test releases it."""

    def __init__(self, result=DARK_RESULT, error=None):
        self.result = result
        self.error = error
        self.calls = []
        self.release = asyncio.Event()

    async def analyze(self, image_base64):
        self.calls.append(image_base64)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


class ImmediateAnalyzer:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def analyze(self, image_base64):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


PHOTO = CapturedImage(uri="file:///photo.jpg", base64="cGhvdG8=")
OTHER_PHOTO = CapturedImage(uri="file:///other.jpg", base64="b3RoZXI=")


class TestCaptureSession:
    """Tests for the capture/submit state machine."""

    def test_starts_idle(self):
        session = CaptureSession(ImmediateAnalyzer([]))
        assert session.state == Idle()
        assert session.camera_open is False

    def test_pick_selects_image(self):
        session = CaptureSession(ImmediateAnalyzer([]))

        assert session.pick(PHOTO) is True
        assert session.state == ImageSelected(PHOTO)

    def test_cancelled_pick_keeps_state(self):
        session = CaptureSession(ImmediateAnalyzer([]))
        session.pick(PHOTO)

        assert session.pick(None) is False
        assert session.state == ImageSelected(PHOTO)

    def test_new_image_replaces_selected(self):
        session = CaptureSession(ImmediateAnalyzer([]))
        session.pick(PHOTO)
        session.pick(OTHER_PHOTO)

        assert session.state == ImageSelected(OTHER_PHOTO)

    def test_capture_closes_camera(self):
        haptics = RecordingHaptics()
        session = CaptureSession(ImmediateAnalyzer([]), haptics=haptics)
        session.open_camera()

        session.capture(PHOTO)

        assert session.camera_open is False
        assert session.state == ImageSelected(PHOTO)
        assert haptics.events == [ImpactStyle.MEDIUM]

    def test_closing_camera_without_capture_stays_idle(self):
        session = CaptureSession(ImmediateAnalyzer([]))
        session.open_camera()
        session.close_camera()

        assert session.camera_open is False
        assert session.state == Idle()

    def test_clear_returns_to_idle(self):
        session = CaptureSession(ImmediateAnalyzer([]))
        session.pick(PHOTO)
        session.clear()

        assert session.state == Idle()

    @pytest.mark.asyncio
    async def test_submit_from_idle_is_ignored(self):
        analyzer = ImmediateAnalyzer([DARK_RESULT])
        session = CaptureSession(analyzer)

        assert await session.submit() is None
        assert analyzer.calls == 0
        assert session.state == Idle()

    @pytest.mark.asyncio
    async def test_submit_success(self):
        haptics = RecordingHaptics()
        navigator = RecordingNavigator()
        session = CaptureSession(ImmediateAnalyzer([DARK_RESULT]), haptics=haptics, navigator=navigator)
        session.pick(PHOTO)

        result = await session.submit()

        assert result == DARK_RESULT
        assert session.state == Succeeded(PHOTO, DARK_RESULT)
        assert haptics.events[-1] == FeedbackType.SUCCESS
        assert navigator.shown == [(PHOTO, DARK_RESULT)]

    @pytest.mark.asyncio
    async def test_submit_failure_keeps_image_for_retry(self):
        haptics = RecordingHaptics()
        analyzer = ImmediateAnalyzer([AnalysisRequestError("Upstream model error: 500"), DARK_RESULT])
        session = CaptureSession(analyzer, haptics=haptics)
        session.pick(PHOTO)

        assert await session.submit() is None
        assert session.state == Failed(PHOTO, "Upstream model error: 500")
        assert haptics.events[-1] == FeedbackType.ERROR

        assert await session.submit() == DARK_RESULT
        assert session.state == Succeeded(PHOTO, DARK_RESULT)
        assert analyzer.calls == 2

    @pytest.mark.asyncio
    async def test_repeated_submits_make_one_call(self):
        analyzer = GatedAnalyzer()
        session = CaptureSession(analyzer)
        session.pick(PHOTO)

        first = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        assert session.state == Submitting(PHOTO)
        assert session.is_submitting

        extra = [await session.submit() for _ in range(5)]
        analyzer.release.set()
        result = await first

        assert extra == [None] * 5
        assert result == DARK_RESULT
        assert analyzer.calls == [PHOTO.base64]

    @pytest.mark.asyncio
    async def test_concurrent_submits_make_one_call(self):
        analyzer = GatedAnalyzer()
        session = CaptureSession(analyzer)
        session.pick(PHOTO)

        tasks = [asyncio.create_task(session.submit()) for _ in range(3)]
        await asyncio.sleep(0)
        analyzer.release.set()
        results = await asyncio.gather(*tasks)

        assert results.count(DARK_RESULT) == 1
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_image_cannot_change_while_submitting(self):
        analyzer = GatedAnalyzer()
        session = CaptureSession(analyzer)
        session.pick(PHOTO)

        task = asyncio.create_task(session.submit())
        await asyncio.sleep(0)

        assert session.pick(OTHER_PHOTO) is False
        session.clear()
        assert session.state == Submitting(PHOTO)

        analyzer.release.set()
        await task

    @pytest.mark.asyncio
    async def test_analyze_another_returns_to_idle(self):
        session = CaptureSession(ImmediateAnalyzer([DARK_RESULT]))
        session.pick(PHOTO)
        await session.submit()

        session.analyze_another()

        assert session.state == Idle()

    @pytest.mark.asyncio
    async def test_leave_after_failure_returns_to_idle(self):
        session = CaptureSession(ImmediateAnalyzer([RuntimeError("offline")]))
        session.pick(PHOTO)
        await session.submit()

        session.leave()

        assert session.state == Idle()

    @pytest.mark.asyncio
    async def test_save_result_records_history(self):
        history = HistoryStore(MemoryStore(), clock=lambda: 1700000000.0)
        session = CaptureSession(ImmediateAnalyzer([DARK_RESULT]), history=history)
        session.pick(PHOTO)
        await session.submit()

        entry = await session.save_result()

        assert entry.imageBase64 == PHOTO.base64
        assert entry.result == DARK_RESULT
        assert [e.id for e in await history.list()] == [entry.id]
        assert session.state == Idle()

    @pytest.mark.asyncio
    async def test_save_result_requires_success(self):
        history = HistoryStore(MemoryStore())
        session = CaptureSession(ImmediateAnalyzer([]), history=history)
        session.pick(PHOTO)

        assert await session.save_result() is None
        assert await history.list() == []


class TestHistoryStore:
    """Tests for the capped local history."""

    @pytest.mark.asyncio
    async def test_empty_history(self):
        assert await HistoryStore(MemoryStore()).list() == []

    @pytest.mark.asyncio
    async def test_save_prepends(self):
        history = HistoryStore(MemoryStore())

        await history.save(make_entry("1"))
        await history.save(make_entry("2"))

        assert [e.id for e in await history.list()] == ["2", "1"]

    @pytest.mark.asyncio
    async def test_save_keeps_fifty_newest(self):
        history = HistoryStore(MemoryStore())

        for i in range(51):
            await history.save(make_entry(str(i)))

        ids = [e.id for e in await history.list()]
        assert len(ids) == 50
        assert ids == [str(i) for i in range(50, 0, -1)]

    @pytest.mark.asyncio
    async def test_save_same_id_replaces(self):
        history = HistoryStore(MemoryStore())
        await history.save(make_entry("1"))
        await history.save(make_entry("2"))

        await history.save(make_entry("1"))

        assert [e.id for e in await history.list()] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_delete(self):
        history = HistoryStore(MemoryStore())
        for i in range(3):
            await history.save(make_entry(str(i)))

        await history.delete("1")

        assert [e.id for e in await history.list()] == ["2", "0"]

    @pytest.mark.asyncio
    async def test_delete_unknown_id_is_noop(self):
        store = MemoryStore()
        history = HistoryStore(store)
        await history.save(make_entry("1"))
        before = await store.get_item(HISTORY_KEY)

        await history.delete("does-not-exist")

        assert await store.get_item(HISTORY_KEY) == before
        assert [e.id for e in await history.list()] == ["1"]

    @pytest.mark.asyncio
    async def test_clear(self):
        store = MemoryStore()
        history = HistoryStore(store)
        await history.save(make_entry("1"))

        await history.clear()

        assert await history.list() == []
        assert await store.get_item(HISTORY_KEY) is None

    @pytest.mark.asyncio
    async def test_unreadable_history_reads_empty(self):
        for raw in ("not json", json.dumps({"id": "1"})):
            assert await HistoryStore(MemoryStore({HISTORY_KEY: raw})).list() == []

    @pytest.mark.asyncio
    async def test_record_ids_are_unique_with_frozen_clock(self):
        history = HistoryStore(MemoryStore(), clock=lambda: 1700000000.0)

        first = await history.record("img", DARK_RESULT)
        second = await history.record("img", DARK_RESULT)

        assert first.id == "1700000000000"
        assert second.id == "1700000000001"
        assert first.date == "2023-11-14T22:13:20+00:00"

    @pytest.mark.asyncio
    async def test_stored_format_is_plain_json_array(self):
        store = MemoryStore()
        await HistoryStore(store).save(make_entry("1"))

        stored = json.loads(await store.get_item(HISTORY_KEY))

        assert stored == [make_entry("1").model_dump()]


class TestSettingsStore:
    """Tests for persisted settings."""

    @pytest.mark.asyncio
    async def test_defaults_to_celsius(self):
        assert await SettingsStore(MemoryStore()).load() == Settings(useFahrenheit=False)

    @pytest.mark.asyncio
    async def test_toggle_persists(self):
        store = MemoryStore()

        await SettingsStore(store).set_use_fahrenheit(True)

        assert (await SettingsStore(store).load()).useFahrenheit is True
        assert json.loads(await store.get_item(SETTINGS_KEY)) == {"useFahrenheit": True}

    @pytest.mark.asyncio
    async def test_garbage_falls_back_to_defaults(self):
        store = MemoryStore({SETTINGS_KEY: "{oops"})
        assert await SettingsStore(store).load() == Settings()


class TestJsonFileStore:
    """Tests for the on-disk key-value store."""

    @pytest.mark.asyncio
    async def test_roundtrip_across_instances(self, tmp_path):
        path = tmp_path / "client" / "store.json"

        await JsonFileStore(path).set_item("a", "1")

        assert await JsonFileStore(path).get_item("a") == "1"

    @pytest.mark.asyncio
    async def test_remove_item(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        await store.set_item("a", "1")

        await store.remove_item("a")
        await store.remove_item("missing")

        assert await store.get_item("a") is None

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")

        assert await JsonFileStore(path).get_item("a") is None

    @pytest.mark.asyncio
    async def test_history_on_disk(self, tmp_path):
        history = HistoryStore(JsonFileStore(tmp_path / "store.json"))
        await history.save(make_entry("1"))

        reloaded = HistoryStore(JsonFileStore(tmp_path / "store.json"))
        assert [e.id for e in await reloaded.list()] == ["1"]
        assert not list(tmp_path.glob(".store.json.*.tmp"))


class TestAnalysisApiClient:
    """Tests for the client side of POST /api/analyze."""

    @pytest.mark.asyncio
    async def test_success(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=DARK_ROAST_JSON)

        api = AnalysisApiClient("http://server.test/", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        assert await api.analyze("abc") == DARK_RESULT
        assert requests == [{"imageData": "abc"}]

    @pytest.mark.asyncio
    async def test_error_body_message(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "Upstream model error: 429"}))
        api = AnalysisApiClient("http://server.test", http_client=httpx.AsyncClient(transport=transport))

        with pytest.raises(AnalysisRequestError, match="Upstream model error: 429") as exc_info:
            await api.analyze("abc")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway"))
        api = AnalysisApiClient("http://server.test", http_client=httpx.AsyncClient(transport=transport))

        with pytest.raises(AnalysisRequestError, match="Bad Gateway"):
            await api.analyze("abc")

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        api = AnalysisApiClient("http://server.test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(AnalysisRequestError, match="Could not reach"):
            await api.analyze("abc")

    @pytest.mark.asyncio
    async def test_against_server_app(self, make_service):
        """End to end: client library -> FastAPI app -> fake upstream."""
        upstream = FakeUpstream()
        app.state.analysis_service = make_service(upstream)
        api = AnalysisApiClient(
            "http://testserver",
            http_client=httpx.AsyncClient(transport=httpx.ASGITransport(app=app)),
        )

        assert await api.analyze("cGhvdG8=") == DARK_RESULT
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_server_error_reaches_session(self, make_service):
        """A server-side failure shows up as the session's error message."""
        app.state.analysis_service = make_service(FakeUpstream(httpx.Response(503, text="overloaded")))
        api = AnalysisApiClient(
            "http://testserver",
            http_client=httpx.AsyncClient(transport=httpx.ASGITransport(app=app)),
        )
        session = CaptureSession(api)
        session.pick(PHOTO)

        await session.submit()

        assert session.state == Failed(PHOTO, "Upstream model error: 503")


class TestDisplay:
    """Tests for result formatting helpers."""

    def test_roast_colors(self):
        assert roast_color("Light") == "#C4A77D"
        assert roast_color("Medium-Light") == "#A68A4A"
        assert roast_color("medium light") == "#A68A4A"
        assert roast_color("Medium") == "#8B6914"
        assert roast_color("Medium Dark") == "#5C3D1E"
        assert roast_color("Dark roast") == "#3D2314"
        assert roast_color("unknown") == "#8B6914"

    def test_celsius_to_fahrenheit(self):
        assert celsius_to_fahrenheit(100) == 212
        assert celsius_to_fahrenheit(82) == 180

    def test_format_temperature_celsius(self):
        assert format_temperature("82", use_fahrenheit=False) == "82°C"
        assert format_temperature("80-85°C", use_fahrenheit=False) == "80-85°C"

    def test_format_temperature_fahrenheit(self):
        assert format_temperature("80-85°C", use_fahrenheit=True) == "176-185°F"
        assert format_temperature("92 - 96°C (197-205°F)", use_fahrenheit=True) == "198-205°F"

    def test_format_temperature_without_number(self):
        assert format_temperature("hot", use_fahrenheit=True) == "hot"

    def test_format_history_date(self):
        assert format_history_date("2025-03-04T09:30:00.000Z") == "Mar 4, 2025, 09:30"
