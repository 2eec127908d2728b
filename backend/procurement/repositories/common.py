from __future__ import annotations

import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

# Keys that only exist for the storage layout and are never returned to clients.
STORAGE_KEYS = ("pk", "sk", "gsi1pk", "gsi1sk", "gsi2pk", "gsi2sk", "entityType")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def to_ddb(value: Any) -> Any:
    """DynamoDB rejects floats; numbers are stored as Decimal."""
    if isinstance(value, bool):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_ddb(v) for v in value]
    return value


def from_ddb(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_ddb(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [from_ddb(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(from_ddb(v) for v in value)
    return value


def strip_storage_keys(item: dict[str, Any]) -> dict[str, Any]:
    out = from_ddb(dict(item))
    for k in STORAGE_KEYS:
        out.pop(k, None)
    return out


class Expr:
    """
    Accumulates an update expression and a condition expression sharing one
    set of placeholders.

    Every attribute goes through `#aN` (several of ours are reserved words,
    e.g. `status`) and every value through `:vN`. Conditions are always
    AND-joined.
    """

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._name_idx: dict[str, str] = {}
        self._sets: list[str] = []
        self._removes: list[str] = []
        self._adds: list[str] = []
        self._deletes: list[str] = []
        self._conds: list[str] = []

    def name(self, attr: str) -> str:
        ph = self._name_idx.get(attr)
        if ph is None:
            ph = f"#a{len(self._name_idx) + 1}"
            self._name_idx[attr] = ph
            self.names[ph] = attr
        return ph

    def value(self, v: Any) -> str:
        ph = f":v{len(self.values) + 1}"
        self.values[ph] = to_ddb(v)
        return ph

    # --- update clauses ---

    def set(self, attr: str, v: Any) -> "Expr":
        self._sets.append(f"{self.name(attr)} = {self.value(v)}")
        return self

    def remove(self, attr: str) -> "Expr":
        self._removes.append(self.name(attr))
        return self

    def add(self, attr: str, v: Any) -> "Expr":
        self._adds.append(f"{self.name(attr)} {self.value(v)}")
        return self

    def delete(self, attr: str, v: Any) -> "Expr":
        self._deletes.append(f"{self.name(attr)} {self.value(v)}")
        return self

    # --- condition clauses ---

    def exists(self, attr: str) -> "Expr":
        self._conds.append(f"attribute_exists({self.name(attr)})")
        return self

    def not_exists(self, attr: str) -> "Expr":
        self._conds.append(f"attribute_not_exists({self.name(attr)})")
        return self

    def eq(self, attr: str, v: Any) -> "Expr":
        self._conds.append(f"{self.name(attr)} = {self.value(v)}")
        return self

    def gt(self, attr: str, v: Any) -> "Expr":
        self._conds.append(f"{self.name(attr)} > {self.value(v)}")
        return self

    def is_in(self, attr: str, options: Iterable[Any]) -> "Expr":
        phs = [self.value(getattr(o, "value", o)) for o in sorted(options, key=str)]
        if not phs:
            raise ValueError("IN condition needs at least one value")
        self._conds.append(f"{self.name(attr)} IN ({', '.join(phs)})")
        return self

    # --- rendering ---

    @property
    def update_expression(self) -> str:
        parts: list[str] = []
        if self._sets:
            parts.append("SET " + ", ".join(self._sets))
        if self._removes:
            parts.append("REMOVE " + ", ".join(self._removes))
        if self._adds:
            parts.append("ADD " + ", ".join(self._adds))
        if self._deletes:
            parts.append("DELETE " + ", ".join(self._deletes))
        return " ".join(parts)

    @property
    def condition_expression(self) -> str | None:
        return " AND ".join(self._conds) if self._conds else None

    def condition_kwargs(self) -> dict[str, Any]:
        return {
            "condition_expression": self.condition_expression,
            "expression_attribute_names": self.names or None,
            "expression_attribute_values": self.values or None,
        }

    def update_kwargs(self) -> dict[str, Any]:
        return {"update_expression": self.update_expression, **self.condition_kwargs()}
