"""
Calendar Filter / Sort / Paginate Pipeline

Turns the flat collection of a period's milestone instances into the
visible page:

    instances → (calendar mode: enabled only) → classify → filter → sort → page

Filter criteria are combined with AND; inside a set criterion (statuses,
types, templates, processes) any member matches.  Text comparisons ignore
accents and case, so "GESTION" finds "Gestión".

Any change of filter or sort sends the view back to page 1.

Usage:
    view = CalendarView(instances, today=utc_today(), page_size=10)
    view.set_filter(CalendarFilter(text="iva", statuses=frozenset({DisplayStatus.OVERDUE})))
    view.sort_by(SortKey.DEADLINE_DATE)
    page = view.current_page()
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum

from calendario.services.calendar_types import DisplayStatus, MilestoneInstance
from calendario.services.status_classifier import (
    classify_instance,
    deadline_instant,
    is_due_tomorrow,
)


# ═════════════════════════════════════════════════════════════════════════════
# Text normalisation
# ═════════════════════════════════════════════════════════════════════════════

def normalize_text(value) -> str:
    """Strip diacritics and fold case: "Gestión IVA" → "gestion iva"."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.casefold().strip()


_TILDE = "\u0303"


def collation_key(value) -> str:
    """Spanish sort key: accents and case ignored, ñ ordered after n.

    The combining tilde after an ``n`` is kept; it sorts above every ASCII
    letter, so "ñu" falls between "nz" and "o".
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value).casefold().strip())
    kept = []
    for ch in decomposed:
        if unicodedata.category(ch) != "Mn":
            kept.append(ch)
        elif ch == _TILDE and kept and kept[-1] == "n":
            kept.append(ch)
    return "".join(kept)


# ═════════════════════════════════════════════════════════════════════════════
# Sorting
# ═════════════════════════════════════════════════════════════════════════════

class SortKey(str, Enum):
    PROCESS = "proceso"
    MILESTONE = "hito"
    STATUS = "estado"
    DEADLINE_DATE = "fecha_limite"
    DEADLINE_TIME = "hora_limite"
    STATUS_DATE = "fecha_estado"
    TYPE = "tipo"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortState:
    key: SortKey = SortKey.DEADLINE_DATE
    direction: SortDirection = SortDirection.ASC

    def toggled(self, key: SortKey | str) -> "SortState":
        """Same key flips the direction; another key starts ascending."""
        key = SortKey(key)
        if key is self.key:
            flipped = SortDirection.DESC if self.direction is SortDirection.ASC else SortDirection.ASC
            return SortState(key, flipped)
        return SortState(key, SortDirection.ASC)


def _sort_value(row: tuple[MilestoneInstance, DisplayStatus], key: SortKey):
    """Comparable value for *key*, or None when the row has none."""
    instance = row[0]
    if key is SortKey.PROCESS:
        return collation_key(instance.process_name) or None
    if key is SortKey.MILESTONE:
        return collation_key(instance.template_name) or None
    if key is SortKey.STATUS:
        return collation_key(instance.status.value)
    if key is SortKey.TYPE:
        return collation_key(instance.type_tag) or None
    if key is SortKey.STATUS_DATE:
        return instance.status_changed_at
    if instance.deadline_date is None:
        return None
    due = deadline_instant(instance.deadline_date, instance.deadline_time)
    if key is SortKey.DEADLINE_DATE:
        return (due.date(), due.time())
    return (due.time(), due.date())


def sort_rows(
    rows: list[tuple[MilestoneInstance, DisplayStatus]],
    state: SortState,
) -> list[tuple[MilestoneInstance, DisplayStatus]]:
    """Sort by *state*; rows without a value go last in either direction.

    Instance id breaks remaining ties so the order is stable across reads.
    """
    present, missing = [], []
    for row in rows:
        (missing if _sort_value(row, state.key) is None else present).append(row)
    present.sort(
        key=lambda r: (_sort_value(r, state.key), r[0].id),
        reverse=state.direction is SortDirection.DESC,
    )
    missing.sort(key=lambda r: r[0].id)
    return present + missing


# ═════════════════════════════════════════════════════════════════════════════
# Filtering
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CalendarFilter:
    """Conjunction of optional criteria.  Empty criteria match everything."""
    text: str = ""
    template_ids: frozenset = field(default_factory=frozenset)
    process_names: frozenset = field(default_factory=frozenset)
    statuses: frozenset = field(default_factory=frozenset)
    types: frozenset = field(default_factory=frozenset)
    date_from: date | None = None
    date_to: date | None = None

    def matches(self, instance: MilestoneInstance, status: DisplayStatus) -> bool:
        if self.text:
            needle = normalize_text(self.text)
            haystacks = (normalize_text(instance.process_name), normalize_text(instance.template_name))
            if not any(needle in h for h in haystacks):
                return False
        if self.template_ids and instance.template_id not in self.template_ids:
            return False
        if self.process_names:
            wanted = {normalize_text(n) for n in self.process_names}
            if normalize_text(instance.process_name) not in wanted:
                return False
        if self.statuses and status not in self.statuses:
            return False
        if self.types and instance.type_tag not in self.types:
            return False
        if self.date_from or self.date_to:
            if instance.deadline_date is None:
                return False
            if self.date_from and instance.deadline_date < self.date_from:
                return False
            if self.date_to and instance.deadline_date > self.date_to:
                return False
        return True

    @property
    def is_empty(self) -> bool:
        return self == CalendarFilter()


# ═════════════════════════════════════════════════════════════════════════════
# Pagination
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Page:
    items: list
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.page_size - 1) // self.page_size


def paginate(items: list, page: int, page_size: int) -> Page:
    """Slice *items*; an out-of-range page is clamped to the last one."""
    page_size = max(1, page_size)
    total = len(items)
    last_page = max(1, (total + page_size - 1) // page_size)
    page = min(max(1, page), last_page)
    start = (page - 1) * page_size
    return Page(items=items[start:start + page_size], page=page, page_size=page_size, total=total)


# ═════════════════════════════════════════════════════════════════════════════
# View
# ═════════════════════════════════════════════════════════════════════════════

class CalendarView:
    """Filter/sort/page state over one loaded collection.

    Args:
        instances: The period's milestone instances.
        today: Reference day for classification.
        page_size: Rows per page.
        calendar_mode: True shows only enabled instances (compliance view);
            False is the edit table, which shows all of them.
    """

    def __init__(
        self,
        instances: list[MilestoneInstance] = (),
        *,
        today: date,
        page_size: int = 10,
        calendar_mode: bool = True,
    ):
        self.today = today
        self.page_size = page_size
        self.calendar_mode = calendar_mode
        self.filter = CalendarFilter()
        self.sort = SortState()
        self.page = 1
        self._instances: list[MilestoneInstance] = list(instances)

    # ── State changes ────────────────────────────────────────────────────

    def set_instances(self, instances: list[MilestoneInstance]) -> None:
        """Replace the collection (after a refresh).  Filter and sort are
        kept; the page is clamped on the next read."""
        self._instances = list(instances)

    def set_filter(self, criteria: CalendarFilter) -> None:
        self.filter = criteria
        self.page = 1

    def update_filter(self, **changes) -> None:
        self.set_filter(replace(self.filter, **changes))

    def sort_by(self, key: SortKey | str) -> None:
        self.sort = self.sort.toggled(key)
        self.page = 1

    def set_sort(self, state: SortState) -> None:
        self.sort = state
        self.page = 1

    def set_page(self, page: int) -> None:
        self.page = max(1, int(page))

    # ── Reads ────────────────────────────────────────────────────────────

    def visible_instances(self) -> list[MilestoneInstance]:
        if self.calendar_mode:
            return [i for i in self._instances if i.enabled]
        return list(self._instances)

    def rows(self) -> list[tuple[MilestoneInstance, DisplayStatus]]:
        """Filtered and sorted rows with their display status."""
        classified = [(i, classify_instance(i, self.today)) for i in self.visible_instances()]
        matching = [row for row in classified if self.filter.matches(*row)]
        return sort_rows(matching, self.sort)

    def current_page(self) -> Page:
        page = paginate(self.rows(), self.page, self.page_size)
        self.page = page.page
        return page

    def row_dict(self, instance: MilestoneInstance, status: DisplayStatus) -> dict:
        data = instance.to_dict()
        data["estado_visual"] = status.value
        data["estado_visual_label"] = status.label
        data["vence_manana"] = is_due_tomorrow(instance, self.today)
        return data

    def status_counts(self) -> dict[str, int]:
        """Rows per display status over the filtered collection."""
        counts = {s.value: 0 for s in DisplayStatus}
        for _, status in self.rows():
            counts[status.value] += 1
        return counts

    def filter_options(self) -> dict:
        """Distinct values present in the visible collection, for the
        filter drop-downs."""
        instances = self.visible_instances()
        processes = {i.process_name for i in instances if i.process_name}
        types = {i.type_tag for i in instances if i.type_tag}
        templates = {}
        for i in instances:
            templates.setdefault(i.template_id, i.template_name)
        return {
            "procesos": sorted(processes, key=collation_key),
            "tipos": sorted(types, key=collation_key),
            "hitos": [
                {"id": tid, "nombre": name}
                for tid, name in sorted(templates.items(), key=lambda kv: (collation_key(kv[1]), kv[0]))
            ],
        }
