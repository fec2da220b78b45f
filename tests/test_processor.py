from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Sequence

from core.counters import Counter, CounterStore
from core.models import ChatChannel, ChatEntry, ItemCategory, ItemEntry, LogEntry
from core.processor import EntryProcessor
from core.rules_engine import ActionBundle, ActionKind, build_rules

JST = timezone(timedelta(hours=9))
TS = datetime(2022, 6, 12, 12, 0, 0, tzinfo=JST)


class RecordingDispatcher:
    """Stands in for ActionDispatcher; applies count so thresholds can be observed."""

    def __init__(self, counters: CounterStore) -> None:
        self.calls: list[tuple[LogEntry, list[ActionKind]]] = []
        self._counters = counters

    async def dispatch(self, entry: LogEntry, bundle: ActionBundle, kinds: Sequence[ActionKind]) -> None:
        self.calls.append((entry, list(kinds)))
        if ActionKind.COUNT in kinds and isinstance(entry, ItemEntry):
            await self._counters.increment(entry.item, entry.count)


def _chat(body: str, channel: ChatChannel = ChatChannel.PARTY) -> ChatEntry:
    return ChatEntry(timestamp=TS, sequence_id=1, channel=channel, actor_id=1000, actor_name="Alice", body=body)


def _item(item: str, count: int) -> ItemEntry:
    return ItemEntry(
        timestamp=TS,
        sequence_id=2,
        category=ItemCategory.PICKUP,
        actor_id=1000,
        actor_name="Alice",
        item=item,
        count=count,
    )


def _processor(rules_config: list[dict]) -> tuple[EntryProcessor, RecordingDispatcher, CounterStore]:
    counters = CounterStore()
    dispatcher = RecordingDispatcher(counters)
    processor = EntryProcessor(rules=build_rules(rules_config), dispatcher=dispatcher, counters=counters)
    return processor, dispatcher, counters


def test_show_fires_once_across_rules() -> None:
    processor, dispatcher, _ = _processor(
        [
            {"channels": ["PARTY"], "action": {"show": True}},
            {"keywords": ["hello"], "action": {"show": True, "get": "http://x/{body}"}},
        ]
    )

    fired = asyncio.run(processor.handle(_chat("hello")))

    assert fired == frozenset({ActionKind.SHOW, ActionKind.GET})
    assert [kinds for _, kinds in dispatcher.calls] == [[ActionKind.SHOW], [ActionKind.GET]]


def test_unmatched_entry_fires_nothing() -> None:
    processor, dispatcher, _ = _processor([{"channels": ["GUILD"], "action": {"show": True}}])

    assert asyncio.run(processor.handle(_chat("hello"))) == frozenset()
    assert dispatcher.calls == []


def test_count_then_threshold_rule_sees_new_total() -> None:
    processor, dispatcher, counters = _processor(
        [
            {"target": "Item", "action": {"count": True}},
            {
                "target": "Item",
                "item_counts": [{"keywords": ["Meseta"], "every": 1000}],
                "action": {"show_item_counts": True},
            },
        ]
    )

    async def run():
        fired = [
            await processor.handle(_item("Meseta", 800)),
            await processor.handle(_item("Meseta", 300)),
            await processor.handle(_item("Meseta", 100)),
        ]
        return fired, await counters.snapshot()

    fired, snapshot = asyncio.run(run())

    assert fired == [
        frozenset({ActionKind.COUNT}),
        frozenset({ActionKind.COUNT, ActionKind.SHOW_ITEM_COUNTS}),
        frozenset({ActionKind.COUNT}),
    ]
    assert snapshot.counts == {"Meseta": Counter(current=1200, prev=1100)}


def test_invalid_regex_only_skips_that_rule() -> None:
    processor, dispatcher, _ = _processor(
        [
            {"regex": "(", "action": {"show": True}},
            {"keywords": ["hello"], "action": {"show": True}},
        ]
    )

    fired = asyncio.run(processor.handle(_chat("hello")))

    assert fired == frozenset({ActionKind.SHOW})
    assert len(dispatcher.calls) == 1


def test_handle_batch_keeps_order() -> None:
    processor, dispatcher, _ = _processor([{"action": {"show": True}}])
    entries = [_chat("one"), _item("Meseta", 5), _chat("two")]

    assert asyncio.run(processor.handle_batch(entries)) == 3
    assert [entry for entry, _ in dispatcher.calls] == entries
