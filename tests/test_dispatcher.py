from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Mapping, Optional, Sequence
from urllib.parse import quote

from core.counters import Counter, CounterSnapshot, CounterStore
from core.dispatcher import ActionDispatcher, post_headers, render_url_template
from core.errors import ActionTransportError, SoundPlaybackError
from core.models import ChatChannel, ChatEntry, ItemCategory, ItemEntry, LogEntry
from core.ports import HttpResponse
from core.rules_engine import ActionBundle, ActionKind

JST = timezone(timedelta(hours=9))
TS = datetime(2022, 6, 12, 12, 0, 0, tzinfo=JST)


class FakeConsole:
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []
        self.snapshots: list[CounterSnapshot] = []
        self.resets = 0
        self.system_lines: list[tuple[str, str]] = []

    def show_entry(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def show_counters(self, snapshot: CounterSnapshot) -> None:
        self.snapshots.append(snapshot)

    def show_reset(self) -> None:
        self.resets += 1

    def system(self, action_label: str, message: str) -> None:
        self.system_lines.append((action_label, message))


class FakeSound:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.played: list[str] = []
        self._error = error

    async def play(self, path: str) -> None:
        self.played.append(path)
        if self._error is not None:
            raise self._error


class GatedSound(FakeSound):
    """Blocks in play() until released, like a long sound file."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__(error)
        self.gate: Optional[asyncio.Event] = None

    async def play(self, path: str) -> None:
        assert self.gate is not None
        await self.gate.wait()
        await super().play(path)


class FakeCommands:
    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def run(self, argv: Sequence[str]) -> int:
        self.calls.append(list(argv))
        return 0


class FakeHttp:
    def __init__(self, response: Optional[HttpResponse] = None, error: Optional[Exception] = None) -> None:
        self.requests: list[tuple[str, str, Optional[str], dict]] = []
        self._response = response or HttpResponse(status=200, content_type="text/plain", text="ok")
        self._error = error

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        self.requests.append(("GET", url, None, dict(headers)))
        if self._error is not None:
            raise self._error
        return self._response

    async def post(self, url: str, body: str, headers: Mapping[str, str]) -> HttpResponse:
        self.requests.append(("POST", url, body, dict(headers)))
        if self._error is not None:
            raise self._error
        return self._response


def _chat(body: str = "hello world & more") -> ChatEntry:
    return ChatEntry(
        timestamp=TS, sequence_id=1, channel=ChatChannel.PARTY, actor_id=1000, actor_name="アリス", body=body
    )


def _item(item: str = "Meseta", count: int = 1000) -> ItemEntry:
    return ItemEntry(
        timestamp=TS,
        sequence_id=1,
        category=ItemCategory.PICKUP,
        actor_id=1000,
        actor_name="Alice",
        item=item,
        count=count,
    )


def _dispatcher(**overrides) -> tuple[ActionDispatcher, dict]:
    parts = {
        "console": FakeConsole(),
        "sound": FakeSound(),
        "commands": FakeCommands(),
        "http": FakeHttp(),
        "counters": CounterStore(),
    }
    parts.update(overrides)
    return ActionDispatcher(**parts), parts


def test_render_url_template_encodes_fields() -> None:
    url = render_url_template("http://x/?b={body}&n={name}&c={channel}&d={datetime}", _chat())
    assert url == (
        "http://x/?b=hello%20world%20%26%20more"
        f"&n={quote('アリス', safe='')}"
        "&c=PARTY"
        f"&d={quote(TS.isoformat(), safe='')}"
    )


def test_render_url_template_for_items() -> None:
    url = render_url_template("http://x/{channel}/{body}", _item())
    assert url == f"http://x/ITEM/{quote('Meseta × 1,000', safe='')}"


def test_post_headers() -> None:
    headers = post_headers(_chat())
    assert headers["User-Agent"] == "NGS Log Watch"
    assert headers["ngs-log-watch-name"] == quote("アリス", safe="")
    assert headers["ngs-log-watch-channel"] == "PARTY"
    assert headers["ngs-log-watch-datetime"] == "2022-06-12T12:00:00+09:00"


def test_dispatch_runs_show_command_and_http() -> None:
    dispatcher, parts = _dispatcher()
    bundle = ActionBundle(show=True, command=("notify-send", "hi"), get="http://x/{name}", post="http://y/")
    entry = _chat()

    asyncio.run(dispatcher.dispatch(entry, bundle, bundle.kinds()))

    assert parts["console"].entries == [entry]
    assert parts["commands"].calls == [["notify-send", "hi"]]
    methods = sorted(request[0] for request in parts["http"].requests)
    assert methods == ["GET", "POST"]
    post = next(request for request in parts["http"].requests if request[0] == "POST")
    assert post[2] == "hello world & more"
    labels = {label for label, _ in parts["console"].system_lines}
    assert labels == {"Command", "Get", "Post"}


def test_http_response_without_content_type_prints_nothing() -> None:
    http = FakeHttp(response=HttpResponse(status=204, content_type=None, text=None))
    dispatcher, parts = _dispatcher(http=http)
    bundle = ActionBundle(get="http://x/")

    asyncio.run(dispatcher.dispatch(_chat(), bundle, bundle.kinds()))

    assert parts["console"].system_lines == []


def test_non_text_response_is_described() -> None:
    http = FakeHttp(response=HttpResponse(status=200, content_type="image/png", text=None))
    dispatcher, parts = _dispatcher(http=http)
    bundle = ActionBundle(get="http://x/")

    asyncio.run(dispatcher.dispatch(_chat(), bundle, bundle.kinds()))

    assert parts["console"].system_lines == [("Get", "http://x/ => 200 (not a text, mime = image/png)")]


def test_transport_error_is_logged_and_other_actions_complete(caplog) -> None:
    dispatcher, parts = _dispatcher(http=FakeHttp(error=ActionTransportError("connection refused")))
    bundle = ActionBundle(show=True, post="http://y/")

    with caplog.at_level(logging.WARNING, logger="core.dispatcher"):
        asyncio.run(dispatcher.dispatch(_chat(), bundle, bundle.kinds()))

    assert len(parts["console"].entries) == 1
    assert "connection refused" in caplog.text


def test_sound_is_detached_and_failures_are_logged(caplog) -> None:
    sound = GatedSound(error=SoundPlaybackError("no player"))
    dispatcher, parts = _dispatcher(sound=sound)
    bundle = ActionBundle(sound="ding.wav", show=True)

    async def run() -> tuple[int, int]:
        sound.gate = asyncio.Event()
        await dispatcher.dispatch(_chat(), bundle, bundle.kinds())
        # Dispatch returned while the sound is still playing.
        playing = len(dispatcher.background_tasks)
        shown = len(parts["console"].entries)
        sound.gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return playing, shown

    with caplog.at_level(logging.WARNING, logger="core.dispatcher"):
        playing, shown = asyncio.run(run())

    assert (playing, shown) == (1, 1)
    assert sound.played == ["ding.wav"]
    assert dispatcher.background_tasks == frozenset()
    assert ("Sound", "ding.wav") in parts["console"].system_lines
    assert "no player" in caplog.text


def test_count_only_applies_to_items() -> None:
    counters = CounterStore()
    dispatcher, _ = _dispatcher(counters=counters)
    bundle = ActionBundle(count=True)

    async def run() -> CounterSnapshot:
        await dispatcher.dispatch(_chat(), bundle, [ActionKind.COUNT])
        await dispatcher.dispatch(_item(count=1000), bundle, [ActionKind.COUNT])
        await dispatcher.dispatch(_item(count=250), bundle, [ActionKind.COUNT])
        return await counters.snapshot()

    assert asyncio.run(run()).counts == {"Meseta": Counter(current=1250, prev=1000)}


def test_show_and_reset_item_counts() -> None:
    counters = CounterStore()
    dispatcher, parts = _dispatcher(counters=counters)

    async def run() -> CounterSnapshot:
        await counters.increment("Meseta", 10)
        await dispatcher.dispatch(_item(), ActionBundle(show_item_counts=True), [ActionKind.SHOW_ITEM_COUNTS])
        await dispatcher.dispatch(_item(), ActionBundle(reset_item_counts=True), [ActionKind.RESET_ITEM_COUNTS])
        return await counters.snapshot()

    after = asyncio.run(run())
    assert parts["console"].snapshots[0].counts == {"Meseta": Counter(current=10, prev=0)}
    assert parts["console"].resets == 1
    assert after.counts == {}
