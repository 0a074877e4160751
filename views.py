"""
Filtered, searched and sorted views over an in-memory task list.

These work on serialized tasks (the JSON shape returned by GET /tasks) and
never touch the database, so the same derivation backs the list endpoint's
query parameters and any client holding a fetched list.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from database import parse_datetime
from schemas import TASK_STATUSES

Task = Dict[str, Any]

STATUS_RANK = {status: rank for rank, status in enumerate(TASK_STATUSES)}

DEFAULT_SORT = "newest"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def filter_by_status(tasks: List[Task], status: Optional[str]) -> List[Task]:
    if not status or status == "all":
        return list(tasks)
    return [t for t in tasks if t.get("status") == status]


def search(tasks: List[Task], query: Optional[str]) -> List[Task]:
    """Case-insensitive substring match over title, description and owner name."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(tasks)

    def haystacks(t: Task):
        yield t.get("title") or ""
        yield t.get("description") or ""
        yield (t.get("user") or {}).get("name") or ""

    return [t for t in tasks if any(needle in h.lower() for h in haystacks(t))]


def _created(t: Task) -> datetime:
    return parse_datetime(t.get("createdAt")) or _EPOCH


def _by_due(tasks: List[Task], reverse: bool) -> List[Task]:
    # tasks without a due date always go last, in their incoming order
    dated = [t for t in tasks if parse_datetime(t.get("dueDate")) is not None]
    undated = [t for t in tasks if parse_datetime(t.get("dueDate")) is None]
    dated.sort(key=lambda t: parse_datetime(t["dueDate"]), reverse=reverse)
    return dated + undated


SORTERS: Dict[str, Callable[[List[Task]], List[Task]]] = {
    "newest": lambda ts: sorted(ts, key=_created, reverse=True),
    "oldest": lambda ts: sorted(ts, key=_created),
    "due-asc": lambda ts: _by_due(ts, reverse=False),
    "due-desc": lambda ts: _by_due(ts, reverse=True),
    "title": lambda ts: sorted(ts, key=lambda t: (t.get("title") or "").lower()),
    "status": lambda ts: sorted(ts, key=lambda t: STATUS_RANK.get(t.get("status"), len(STATUS_RANK))),
}


def sort_tasks(tasks: List[Task], key: Optional[str] = None) -> List[Task]:
    key = key or DEFAULT_SORT
    sorter = SORTERS.get(key)
    if sorter is None:
        raise ValueError(f"Unknown sort '{key}'. Expected one of: {', '.join(SORTERS)}")
    return sorter(list(tasks))


def derive(
    tasks: List[Task],
    status: Optional[str] = None,
    query: Optional[str] = None,
    sort: Optional[str] = None,
) -> List[Task]:
    return sort_tasks(search(filter_by_status(tasks, status), query), sort)
