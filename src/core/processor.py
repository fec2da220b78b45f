"""Core entry processing pipeline.

This module is integration-agnostic. It only relies on the dispatcher and
the counter store, enabling other frontends or adapters without changes here.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable

from core.counters import CounterStore
from core.dispatcher import ActionDispatcher
from core.errors import RuleRegexError
from core.models import LogEntry
from core.rules_engine import ActionClaims, ActionKind, Rule, count_trigger_firings, rule_matches

LOGGER = logging.getLogger(__name__)


class EntryProcessor:
    """Evaluates the rule list for each entry and dispatches its actions."""

    def __init__(self, rules: Iterable[Rule], dispatcher: ActionDispatcher, counters: CounterStore) -> None:
        self._rules = list(rules)
        self._dispatcher = dispatcher
        self._counters = counters

    async def handle(self, entry: LogEntry) -> FrozenSet[ActionKind]:
        """Process one entry and return the action kinds that fired for it."""

        # Each action kind fires at most once per entry; earlier rules win.
        claims = ActionClaims()
        for rule in self._rules:
            try:
                if not rule_matches(rule, entry):
                    continue
                if rule.item_counts is not None:
                    # Counters may have just been bumped by an earlier rule's
                    # count action, so take a fresh snapshot per rule.
                    snapshot = await self._counters.snapshot()
                    if not count_trigger_firings(rule, snapshot.counts):
                        continue
            except RuleRegexError as exc:
                LOGGER.warning("Skipping rule %s: %s", rule.name, exc)
                continue

            kinds = claims.claim(rule.action)
            if not kinds:
                continue
            LOGGER.debug("Rule %s fired %s", rule.name, ", ".join(kind.value for kind in kinds))
            # Dispatch is awaited so counts land before later rules look at them.
            await self._dispatcher.dispatch(entry, rule.action, kinds)

        return claims.fired

    async def handle_batch(self, entries: Iterable[LogEntry]) -> int:
        """Process entries strictly in order; return how many were handled."""

        handled = 0
        for entry in entries:
            await self.handle(entry)
            handled += 1
        return handled
