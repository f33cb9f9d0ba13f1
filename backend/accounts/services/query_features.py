"""
Translate request query parameters into a composed read query.

    features = QueryFeatures(repo.find(), request.query_params, repo)
    features.filter().sort().limit_fields().paginate()
    documents = features.query.execute()

Supported parameters:
    ?role=admin                  equality
    ?created_at[gte]=2024-01-01  comparison (gt, gte, lt, lte, eq, ne)
    ?sort=-fullname,email        sort, '-' for descending (default: -created_at)
    ?fields=fullname,email       projection ('-email' to exclude instead)
    ?page=2&limit=10             pagination (defaults: 1 and DEFAULT_PAGE_LIMIT)

Operators are only recognised as a bracketed suffix on the parameter name.
A value that happens to contain "gt" or "lte" is compared literally.
"""

import re
from typing import Any, Mapping, Optional
from accounts.core.config import settings
from accounts.core.errors import BadRequestError
from accounts.repositories.base import REVISION_FIELD, DocumentQuery, DocumentRepository

RESERVED_PARAMS = ("page", "sort", "limit", "fields")
COMPARISON_OPERATORS = ("gt", "gte", "lt", "lte", "eq", "ne")
DEFAULT_SORT = [("created_at", -1)]
# Largest skip the store accepts (a signed 64-bit integer)
MAX_SKIP = 2**63 - 1

_OPERATOR_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[^\[\]]*)\]$")


class QueryFeatures:
    def __init__(
        self,
        query: DocumentQuery,
        params: Mapping[str, Any],
        repository: DocumentRepository,
        *,
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
    ) -> None:
        self.query = query
        self.params = dict(params)
        self.repository = repository
        self.default_limit = default_limit or settings.DEFAULT_PAGE_LIMIT
        self.max_limit = max_limit or settings.MAX_PAGE_LIMIT

    def _field_name(self, field: str) -> str:
        field = field.strip()
        # '$' names would smuggle query operators ($where, $expr, ...) into the filter
        if not field or field.startswith("$") or ".$" in field:
            raise BadRequestError(f"Invalid field name: {field or '(empty)'}")
        return self.repository.storage_field(field)

    def filter(self) -> "QueryFeatures":
        """Every non-reserved parameter becomes an equality or comparison constraint"""
        conditions: dict[str, dict[str, Any]] = {}

        for key, raw in self.params.items():
            if key in RESERVED_PARAMS:
                continue

            match = _OPERATOR_KEY.match(key)
            if match:
                field, operator = match.group("field"), match.group("op")
                if operator not in COMPARISON_OPERATORS:
                    raise BadRequestError(f"Unsupported filter operator: {operator or '(empty)'}")
            else:
                field, operator = key, "eq"

            name = self._field_name(field)
            if name in self.repository.hidden_fields:
                raise BadRequestError(f"Cannot filter on {name}")

            value = self.repository.cast_value(name, raw)
            conditions.setdefault(name, {})[f"${operator}"] = value

        # {"$eq": v} on its own collapses to a plain equality match
        filter_ = {
            name: ops["$eq"] if list(ops) == ["$eq"] else ops
            for name, ops in conditions.items()
        }
        if filter_:
            self.query.where(filter_)
        return self

    def _sort_field(self, field: str) -> str:
        name = self._field_name(field)
        # Hidden fields are neither filterable nor sortable
        if name in self.repository.hidden_fields:
            raise BadRequestError(f"Cannot sort on {name}")
        return name

    def sort(self) -> "QueryFeatures":
        spec = []
        raw = self.params.get("sort")
        if raw:
            for token in str(raw).split(","):
                token = token.strip()
                if not token:
                    continue
                if token.startswith("-"):
                    spec.append((self._sort_field(token[1:]), -1))
                else:
                    spec.append((self._sort_field(token.lstrip("+")), 1))

        # Default sorting by newest entries
        self.query.sort(spec or DEFAULT_SORT)
        return self

    def limit_fields(self) -> "QueryFeatures":
        raw = self.params.get("fields")
        hidden = set(self.repository.hidden_fields)
        tokens = [t.strip() for t in str(raw).split(",") if t.strip()] if raw else []

        excluded = [t[1:] for t in tokens if t.startswith("-")]
        included = [t for t in tokens if not t.startswith("-")]
        if excluded and included:
            raise BadRequestError("Cannot mix field inclusion and exclusion in 'fields'")

        # Hidden fields are never projected, even when asked for by name
        selected = [
            self._field_name(name) for name in included
            if name not in hidden and name != REVISION_FIELD
        ]
        if selected:
            self.query.select({name: 1 for name in selected})
            return self

        projection = self.repository.default_projection()
        projection.update({self._field_name(name): 0 for name in excluded})
        self.query.select(projection)
        return self

    def _positive_int(self, name: str, default: int) -> int:
        raw = self.params.get(name)
        if raw is None or str(raw).strip() == "":
            return default
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = 0
        if value < 1:
            raise BadRequestError(f"Invalid {name}: {raw}. Must be a positive integer.")
        return value

    def paginate(self) -> "QueryFeatures":
        page = self._positive_int("page", 1)
        limit = min(self._positive_int("limit", self.default_limit), self.max_limit)

        skip = (page - 1) * limit
        if skip > MAX_SKIP:
            raise BadRequestError(f"Invalid page: {page}. Too large.")

        self.query.skip(skip).limit(limit)
        return self
