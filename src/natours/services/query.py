"""Query-string driven filtering, sorting, projection and pagination.

Learn: List endpoints accept query strings like

    /tours?difficulty=easy&price[lt]=1500&sort=-ratings_average,price
          &fields=name,price&page=2&limit=10

QueryBuilder turns those parameters into a SQLAlchemy select. Only
whitelisted columns can be filtered or sorted on; anything else is
ignored. When a parameter is repeated, the last value wins (protects
against parameter pollution like ?sort=price&sort=duration), except for
the plain equality filters a listing explicitly allows to repeat:
?duration=5&duration=9 keeps both values and matches either one.
"""

import re
import uuid
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import Select

from natours.errors import ValidationFailedError

RESERVED_PARAMS = {"page", "sort", "limit", "fields"}
OPERATORS = {
    "gte": lambda col, v: col >= v,
    "gt": lambda col, v: col > v,
    "lte": lambda col, v: col <= v,
    "lt": lambda col, v: col < v,
}
DEFAULT_LIMIT = 100
MAX_LIMIT = 100

_PARAM_RE = re.compile(r"^(?P<field>[a-z_]+)(?:\[(?P<op>gte|gt|lte|lt)\])?$")


def last_values(params: Any, keep_all: Iterable[str] = ()) -> dict[str, Any]:
    """Collapse a multi-dict (Starlette QueryParams) to its last value per key.

    Keys in `keep_all` that were given more than once keep every value, as
    a list.
    """
    if not hasattr(params, "multi_items"):
        return dict(params)
    keep_all = set(keep_all)
    collapsed: dict[str, Any] = {}
    for key in params.keys():
        values = params.getlist(key)
        if key in keep_all and len(values) > 1:
            collapsed[key] = values
        else:
            collapsed[key] = values[-1]
    return collapsed


class QueryBuilder:
    """Apply filter/sort/paginate to a select over `model`.

    `columns` maps public field names to python types used to coerce the
    raw query-string values (int, float, str, bool).
    Keys in `multi_valued` may carry a list of values, matched with IN.
    """

    def __init__(
        self,
        model,
        params: Mapping[str, str],
        columns: Mapping[str, type],
        default_sort: str = "-created_at",
        sortable: Optional[Iterable[str]] = None,
        multi_valued: Iterable[str] = (),
    ):
        self.model = model
        self.params = last_values(params, keep_all=multi_valued)
        self.columns = columns
        self.sortable = set(sortable or columns) | {"created_at"}
        self.default_sort = default_sort

    # ─── Filtering ──────────────────────────────────────

    def _coerce(self, field: str, raw: str) -> Any:
        kind = self.columns[field]
        try:
            if kind is bool:
                if raw.lower() in ("true", "1"):
                    return True
                if raw.lower() in ("false", "0"):
                    return False
                raise ValueError(raw)
            if kind is uuid.UUID:
                return uuid.UUID(raw)
            return kind(raw)
        except ValueError:
            raise ValidationFailedError(f"Invalid {field}: {raw}")

    def filter(self, query: Select) -> Select:
        for key, raw in self.params.items():
            if key in RESERVED_PARAMS:
                continue
            m = _PARAM_RE.match(key)
            if not m or m.group("field") not in self.columns:
                continue
            field, op = m.group("field"), m.group("op")
            column = getattr(self.model, field)
            if isinstance(raw, list):
                query = query.where(column.in_([self._coerce(field, v) for v in raw]))
                continue
            value = self._coerce(field, raw)
            if op:
                query = query.where(OPERATORS[op](column, value))
            else:
                query = query.where(column == value)
        return query

    # ─── Sorting ────────────────────────────────────────

    def sort_fields(self) -> list[tuple[str, bool]]:
        """[(field, descending)] from the sort param, unknown fields dropped."""
        raw = self.params.get("sort") or self.default_sort
        out = []
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            desc = part.startswith("-")
            name = part.lstrip("-")
            if name in self.sortable:
                out.append((name, desc))
        return out

    def sort(self, query: Select) -> Select:
        order = []
        for name, desc in self.sort_fields():
            column = getattr(self.model, name)
            order.append(column.desc() if desc else column.asc())
        # Stable pagination needs a unique tiebreaker
        order.append(self.model.id.asc())
        return query.order_by(*order)

    # ─── Pagination ─────────────────────────────────────

    def page_and_limit(self) -> tuple[int, int]:
        try:
            page = int(self.params.get("page", 1))
            limit = int(self.params.get("limit", DEFAULT_LIMIT))
        except ValueError:
            raise ValidationFailedError("page and limit must be integers")
        return max(page, 1), min(max(limit, 1), MAX_LIMIT)

    def paginate(self, query: Select) -> Select:
        page, limit = self.page_and_limit()
        return query.offset((page - 1) * limit).limit(limit)

    def apply(self, query: Select) -> Select:
        return self.paginate(self.sort(self.filter(query)))

    # ─── Projection ─────────────────────────────────────

    def fields(self) -> Optional[list[str]]:
        return requested_fields(self.params)


def requested_fields(params: Mapping[str, str]) -> Optional[list[str]]:
    """The comma separated `fields` param as a list, or None for everything."""
    raw = params.get("fields")
    if not raw:
        return None
    return [f.strip() for f in raw.split(",") if f.strip()]


def project(doc: dict, fields: Optional[Iterable[str]]) -> dict:
    """Keep only `fields` (plus id) of a serialized document."""
    if not fields:
        return doc
    wanted = set(fields) | {"id"}
    return {k: v for k, v in doc.items() if k in wanted}
