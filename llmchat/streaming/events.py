"""Classification of upstream SSE event names into semantic categories.

Upstream providers name their events inconsistently (``flowNodeStatus``,
``flow.status``, ``reasoning_content``...). Names are normalized to a compact
lowercase alphanumeric key and tested against per-category anchor substrings.
Categories are independent: one name can belong to several of them, and the
caller decides which one takes priority.
"""

import re
from enum import Enum


class EventCategory(str, Enum):
    REASONING = "reasoning"
    DATASET = "dataset"
    SUMMARY = "summary"
    TOOL = "tool"
    USAGE = "usage"
    END = "end"
    STATUS = "status"
    INTERACTIVE = "interactive"
    CHAT_ID = "chat_id"
    CHUNK = "chunk"


EVENT_ANCHORS: dict[EventCategory, tuple[str, ...]] = {
    EventCategory.REASONING: ("reason", "thought", "analysis", "think", "chainofthought"),
    EventCategory.DATASET: ("dataset", "quote", "cite", "reference", "knowledge"),
    EventCategory.SUMMARY: ("summary", "finalsummary", "conclusion", "result"),
    EventCategory.TOOL: ("tool", "plugin", "function", "search", "workflow"),
    EventCategory.USAGE: ("usage", "token"),
    EventCategory.END: ("end", "finish", "complete", "done"),
    EventCategory.STATUS: ("status", "flownodestatus", "progress"),
    EventCategory.INTERACTIVE: ("interactive", "form", "select"),
    EventCategory.CHAT_ID: ("chatid", "session"),
    EventCategory.CHUNK: ("chunk", "message", "delta"),
}

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def get_normalized_event_key(name: str | None) -> str:
    """Strip every non-ASCII-alphanumeric character and lowercase.

    >>> get_normalized_event_key("Flow.Status")
    'flowstatus'
    """
    if not name:
        return ""
    return _NON_ALNUM.sub("", name).lower()


def _key_matches(key: str, category: EventCategory) -> bool:
    return bool(key) and any(anchor in key for anchor in EVENT_ANCHORS[category])


def matches_category(name: str | None, category: EventCategory) -> bool:
    return _key_matches(get_normalized_event_key(name), category)


def classify_event(name: str | None) -> frozenset[EventCategory]:
    """Return every category whose anchors occur in the normalized name."""
    key = get_normalized_event_key(name)
    if not key:
        return frozenset()
    return frozenset(category for category in EventCategory if _key_matches(key, category))


def is_reasoning_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.REASONING)


def is_dataset_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.DATASET)


def is_summary_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.SUMMARY)


def is_tool_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.TOOL)


def is_usage_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.USAGE)


def is_end_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.END)


def is_status_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.STATUS)


def is_interactive_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.INTERACTIVE)


def is_chat_id_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.CHAT_ID)


def is_chunk_like_event(name: str | None) -> bool:
    return matches_category(name, EventCategory.CHUNK)
