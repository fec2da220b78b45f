"""Rule compilation and matching logic (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
import re
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from core.counters import Counter
from core.errors import RuleRegexError
from core.models import ChatChannel, ChatEntry, ItemEntry, LogEntry, actor_name_of, body_or_item, channel_of


class Target(str, Enum):
    CHAT = "Chat"
    ITEM = "Item"


class ActionKind(str, Enum):
    """Action kinds, in the order they are launched."""

    SHOW = "show"
    SOUND = "sound"
    COMMAND = "command"
    GET = "get"
    POST = "post"
    COUNT = "count"
    SHOW_ITEM_COUNTS = "show_item_counts"
    RESET_ITEM_COUNTS = "reset_item_counts"


@dataclass(frozen=True)
class ActionBundle:
    """The actions attached to one rule."""

    show: bool = False
    sound: Optional[str] = None
    command: Optional[Tuple[str, ...]] = None
    get: Optional[str] = None
    post: Optional[str] = None
    count: bool = False
    show_item_counts: bool = False
    reset_item_counts: bool = False

    def kinds(self) -> List[ActionKind]:
        """Return the configured action kinds in launch order."""

        configured = {
            ActionKind.SHOW: self.show,
            ActionKind.SOUND: self.sound is not None,
            ActionKind.COMMAND: self.command is not None,
            ActionKind.GET: self.get is not None,
            ActionKind.POST: self.post is not None,
            ActionKind.COUNT: self.count,
            ActionKind.SHOW_ITEM_COUNTS: self.show_item_counts,
            ActionKind.RESET_ITEM_COUNTS: self.reset_item_counts,
        }
        return [kind for kind in ActionKind if configured[kind]]


@dataclass(frozen=True)
class ItemCountTrigger:
    """Fires each time a matching item's counter crosses a multiple of ``every``."""

    keywords: Optional[Tuple[str, ...]] = None
    regex: Optional[str] = None
    every: int = 1


@dataclass(frozen=True)
class Rule:
    """Compiled rule used by the pipeline. None means "filter not set"."""

    name: str
    action: ActionBundle
    target: Optional[Target] = None
    channels: Optional[FrozenSet[ChatChannel]] = None
    names: Optional[FrozenSet[str]] = None
    keywords: Optional[Tuple[str, ...]] = None
    regex: Optional[str] = None
    ignore_names: Optional[FrozenSet[str]] = None
    ignore_keywords: Optional[Tuple[str, ...]] = None
    ignore_regex: Optional[str] = None
    item_counts: Optional[Tuple[ItemCountTrigger, ...]] = None


def _string_list(value: Any, field: str, rule_name: str) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"Rule {rule_name!r}: {field} must be a list of strings")
    return tuple(value)


def _optional_string(value: Any, field: str, rule_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Rule {rule_name!r}: {field} must be a string")
    return value


def _build_target(value: Any, rule_name: str) -> Optional[Target]:
    if value is None:
        return None
    for target in Target:
        if str(value).lower() == target.value.lower():
            return target
    raise ValueError(f"Rule {rule_name!r}: unsupported target {value!r}")


def _build_channels(value: Any, rule_name: str) -> Optional[FrozenSet[ChatChannel]]:
    names = _string_list(value, "channels", rule_name)
    if names is None:
        return None
    try:
        return frozenset(ChatChannel(name.upper()) for name in names)
    except ValueError:
        raise ValueError(f"Rule {rule_name!r}: unsupported channel in {list(names)}") from None


def _build_action(action: Mapping[str, Any], rule_name: str) -> ActionBundle:
    command = _string_list(action.get("command"), "action.command", rule_name)
    if command is not None and not command:
        raise ValueError(f"Rule {rule_name!r}: action.command must not be empty")
    return ActionBundle(
        show=bool(action.get("show", False)),
        sound=_optional_string(action.get("sound"), "action.sound", rule_name),
        command=command,
        get=_optional_string(action.get("get"), "action.get", rule_name),
        post=_optional_string(action.get("post"), "action.post", rule_name),
        count=bool(action.get("count", False)),
        show_item_counts=bool(action.get("show_item_counts", False)),
        reset_item_counts=bool(action.get("reset_item_counts", False)),
    )


def _build_item_counts(value: Any, rule_name: str) -> Optional[Tuple[ItemCountTrigger, ...]]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"Rule {rule_name!r}: item_counts must be a list")
    triggers: List[ItemCountTrigger] = []
    for spec in value:
        every = int(spec.get("every", 1))
        if every < 1:
            raise ValueError(f"Rule {rule_name!r}: item_counts.every must be >= 1")
        triggers.append(
            ItemCountTrigger(
                keywords=_string_list(spec.get("keywords"), "item_counts.keywords", rule_name),
                regex=_optional_string(spec.get("regex"), "item_counts.regex", rule_name),
                every=every,
            )
        )
    return tuple(triggers)


def build_rules(rules_config: Iterable[dict]) -> List[Rule]:
    """Normalize rule configs into frozen Rule objects.

    Shape errors raise ValueError at load time. Regex syntax is checked
    lazily, when a rule is first evaluated.
    """

    compiled: List[Rule] = []
    for index, rule in enumerate(rules_config, start=1):
        if not rule.get("enabled", True):
            continue
        name = rule.get("name") or f"rule #{index}"
        names = _string_list(rule.get("names"), "names", name)
        ignore_names = _string_list(rule.get("ignore_names"), "ignore_names", name)
        compiled.append(
            Rule(
                name=name,
                action=_build_action(rule.get("action") or {}, name),
                target=_build_target(rule.get("target"), name),
                channels=_build_channels(rule.get("channels"), name),
                names=frozenset(names) if names is not None else None,
                keywords=_string_list(rule.get("keywords"), "keywords", name),
                regex=_optional_string(rule.get("regex"), "regex", name),
                ignore_names=frozenset(ignore_names) if ignore_names is not None else None,
                ignore_keywords=_string_list(rule.get("ignore_keywords"), "ignore_keywords", name),
                ignore_regex=_optional_string(rule.get("ignore_regex"), "ignore_regex", name),
                item_counts=_build_item_counts(rule.get("item_counts"), name),
            )
        )
    return compiled


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def compile_pattern(pattern: str) -> re.Pattern:
    try:
        return _compile(pattern)
    except re.error as exc:
        raise RuleRegexError(f"Invalid regex {pattern!r}: {exc}") from exc


def _target_matches(target: Target, entry: LogEntry) -> bool:
    if target is Target.CHAT:
        return isinstance(entry, ChatEntry)
    return isinstance(entry, ItemEntry)


def rule_matches(rule: Rule, entry: LogEntry) -> bool:
    """Return True when ``entry`` passes every filter set on ``rule``.

    Keywords and regexes look at the chat body, or the item name for item
    entries. Item entries never pass a channel filter.
    """

    text = body_or_item(entry)
    actor_name = actor_name_of(entry)

    if rule.target is not None and not _target_matches(rule.target, entry):
        return False
    if rule.channels is not None and channel_of(entry) not in rule.channels:
        return False
    if rule.names is not None and actor_name not in rule.names:
        return False
    if rule.keywords is not None and not any(keyword in text for keyword in rule.keywords):
        return False
    if rule.regex is not None and not compile_pattern(rule.regex).search(text):
        return False

    if rule.ignore_names is not None and actor_name in rule.ignore_names:
        return False
    if rule.ignore_keywords is not None and any(keyword in text for keyword in rule.ignore_keywords):
        return False
    if rule.ignore_regex is not None and compile_pattern(rule.ignore_regex).search(text):
        return False
    return True


def crossed_threshold(counter: Counter, every: int) -> bool:
    """True when the latest increment passed a multiple of ``every``.

    With every=10: 8 -> 12 crosses 10, 11 -> 12 does not.
    """

    return counter.prev // every < counter.current // every


def trigger_matches_item(trigger: ItemCountTrigger, item: str) -> bool:
    if trigger.keywords is not None and not any(keyword in item for keyword in trigger.keywords):
        return False
    if trigger.regex is not None and not compile_pattern(trigger.regex).search(item):
        return False
    return True


def count_trigger_firings(rule: Rule, counts: Mapping[str, Counter]) -> int:
    """Return how many (item, trigger) pairs of ``rule`` fire on ``counts``."""

    firings = 0
    for item, counter in counts.items():
        for trigger in rule.item_counts or ():
            if crossed_threshold(counter, trigger.every) and trigger_matches_item(trigger, item):
                firings += 1
    return firings


class ActionClaims:
    """Tracks which action kinds already fired for the current entry."""

    def __init__(self) -> None:
        self._fired: Set[ActionKind] = set()

    @property
    def fired(self) -> FrozenSet[ActionKind]:
        return frozenset(self._fired)

    def claim(self, bundle: ActionBundle) -> List[ActionKind]:
        """Return the kinds of ``bundle`` that have not fired yet and mark them."""

        kinds = [kind for kind in bundle.kinds() if kind not in self._fired]
        self._fired.update(kinds)
        return kinds
