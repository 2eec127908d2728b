from __future__ import annotations

import copy
import re
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

# Ensure `backend/` is on sys.path so `import procurement.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))


_INDEX_KEYS = {
    None: ("pk", "sk"),
    "GSI1": ("gsi1pk", "gsi1sk"),
    "GSI2": ("gsi2pk", "gsi2sk"),
}
_CLAUSE_SPLIT = re.compile(r"\b(SET|REMOVE|ADD|DELETE)\b")


class FakeTable:
    """
    In-memory stand-in for DynamoTable.

    Understands the expression subset the repositories emit: AND-joined
    conditions (attribute_exists / attribute_not_exists / = / > / IN) and
    SET / REMOVE / ADD / DELETE update clauses. Transactions validate every
    condition before applying anything, like TransactWriteItems.
    """

    table_name = "Fake"

    def __init__(self):
        # Keyed by (pk, sk)
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_next_transaction = False

    # --- helpers ---

    @staticmethod
    def _k(key: dict[str, Any]) -> tuple[str, str]:
        return str(key.get("pk") or ""), str(key.get("sk") or "")

    def _conflict(self, operation: str, key: dict[str, Any] | None = None):
        from procurement.db.dynamodb.errors import DdbConflict

        return DdbConflict(message="conditional check failed", operation=operation, table_name="Fake", key=key)

    @staticmethod
    def _name(token: str, names: dict[str, str] | None) -> str:
        token = token.strip()
        if token.startswith("#"):
            return str((names or {})[token])
        return token

    @staticmethod
    def _value(token: str, values: dict[str, Any] | None) -> Any:
        return (values or {})[token.strip()]

    def _check(
        self,
        item: dict[str, Any] | None,
        condition: str | None,
        names: dict[str, str] | None,
        values: dict[str, Any] | None,
    ) -> bool:
        if not condition:
            return True
        cur = item or {}
        for clause in condition.split(" AND "):
            clause = clause.strip()
            m = re.fullmatch(r"attribute_(not_)?exists\((.+)\)", clause)
            if m:
                present = self._name(m.group(2), names) in cur
                if present == bool(m.group(1)):
                    return False
                continue
            m = re.fullmatch(r"(\S+) IN \((.+)\)", clause)
            if m:
                attr = self._name(m.group(1), names)
                options = [self._value(v, values) for v in m.group(2).split(",")]
                if attr not in cur or cur[attr] not in options:
                    return False
                continue
            m = re.fullmatch(r"(\S+) (=|>) (\S+)", clause)
            if m:
                attr = self._name(m.group(1), names)
                expected = self._value(m.group(3), values)
                if attr not in cur:
                    return False
                if m.group(2) == "=" and cur[attr] != expected:
                    return False
                if m.group(2) == ">" and not cur[attr] > expected:
                    return False
                continue
            raise AssertionError(f"FakeTable cannot evaluate condition clause: {clause!r}")
        return True

    def _apply_update(
        self,
        item: dict[str, Any],
        expression: str,
        names: dict[str, str] | None,
        values: dict[str, Any] | None,
    ) -> dict[str, Any]:
        out = copy.deepcopy(item)
        parts = _CLAUSE_SPLIT.split(expression)
        for i in range(1, len(parts), 2):
            verb, body = parts[i], parts[i + 1]
            for action in [a.strip() for a in body.split(",") if a.strip()]:
                if verb == "SET":
                    left, right = action.split("=", 1)
                    out[self._name(left, names)] = copy.deepcopy(self._value(right, values))
                elif verb == "REMOVE":
                    out.pop(self._name(action, names), None)
                elif verb == "ADD":
                    left, right = action.split()
                    attr, v = self._name(left, names), self._value(right, values)
                    if isinstance(v, (set, frozenset)):
                        out[attr] = set(out.get(attr) or set()) | set(v)
                    else:
                        out[attr] = Decimal(str(out.get(attr) or 0)) + Decimal(str(v))
                elif verb == "DELETE":
                    left, right = action.split()
                    attr = self._name(left, names)
                    remaining = set(out.get(attr) or set()) - set(self._value(right, values))
                    # DynamoDB drops a set attribute once it is empty.
                    if remaining:
                        out[attr] = remaining
                    else:
                        out.pop(attr, None)
        return out

    # --- DynamoTable surface ---

    def get_item(self, *, key: dict[str, Any], consistent: bool = True) -> dict[str, Any] | None:
        it = self.items.get(self._k(key))
        return copy.deepcopy(it) if it is not None else None

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        k = self._k(item)
        if not self._check(self.items.get(k), condition_expression, expression_attribute_names, expression_attribute_values):
            raise self._conflict("PutItem", dict(pk=k[0], sk=k[1]))
        self.items[k] = copy.deepcopy(item)
        return {}

    def delete_item(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        k = self._k(key)
        if not self._check(self.items.get(k), condition_expression, expression_attribute_names, expression_attribute_values):
            raise self._conflict("DeleteItem", key)
        self.items.pop(k, None)
        return {}

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any] | None,
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ) -> dict[str, Any] | None:
        k = self._k(key)
        cur = self.items.get(k)
        if not self._check(cur, condition_expression, expression_attribute_names, expression_attribute_values):
            raise self._conflict("UpdateItem", key)
        base = cur if cur is not None else {"pk": k[0], "sk": k[1]}
        self.items[k] = self._apply_update(base, update_expression, expression_attribute_names, expression_attribute_values)
        return copy.deepcopy(self.items[k])

    def query_page(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        limit: int = 50,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        next_token: str | None = None,
    ):
        from procurement.db.dynamodb.table import Page

        expr = key_condition_expression.get_expression()
        assert expr["operator"] == "=", "FakeTable only supports partition-key equality"
        key_attr, key_value = expr["values"]
        pk_attr, sk_attr = _INDEX_KEYS[index_name]
        assert key_attr.name == pk_attr

        rows = [it for it in self.items.values() if it.get(pk_attr) == key_value]
        rows.sort(key=lambda it: str(it.get(sk_attr) or ""), reverse=not scan_index_forward)

        start = int(next_token or 0)
        chunk = rows[start : start + int(limit)]
        more = start + int(limit) < len(rows)
        return Page(items=copy.deepcopy(chunk), next_token=str(start + int(limit)) if more else None)

    # --- transactions ---

    def tx_put(self, *, item, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        return {
            "op": "put",
            "key": {"pk": item["pk"], "sk": item["sk"]},
            "item": copy.deepcopy(item),
            "cond": (condition_expression, expression_attribute_names, expression_attribute_values),
        }

    def tx_delete(self, *, key, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "delete", "key": dict(key), "cond": (condition_expression, expression_attribute_names, expression_attribute_values)}

    def tx_update(
        self,
        *,
        key,
        update_expression,
        expression_attribute_names,
        expression_attribute_values,
        condition_expression=None,
    ):
        return {
            "op": "update",
            "key": dict(key),
            "update": update_expression,
            "cond": (condition_expression, expression_attribute_names, expression_attribute_values),
        }

    def tx_condition_check(self, *, key, condition_expression, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "check", "key": dict(key), "cond": (condition_expression, expression_attribute_names, expression_attribute_values)}

    def transact_write(self, *, puts=(), deletes=(), updates=(), condition_checks=(), retry_policy=None):
        entries = [*puts, *deletes, *updates, *condition_checks]
        keys = [self._k(e["key"]) for e in entries]
        assert len(keys) == len(set(keys)), "a transaction may touch each item only once"

        if self.fail_next_transaction:
            self.fail_next_transaction = False
            raise self._conflict("TransactWriteItems")

        for e, k in zip(entries, keys):
            cond, names, values = e["cond"]
            if not self._check(self.items.get(k), cond, names, values):
                raise self._conflict("TransactWriteItems", e["key"])

        for e, k in zip(entries, keys):
            if e["op"] == "put":
                self.items[k] = copy.deepcopy(e["item"])
            elif e["op"] == "delete":
                self.items.pop(k, None)
            elif e["op"] == "update":
                _cond, names, values = e["cond"]
                base = self.items.get(k) or {"pk": k[0], "sk": k[1]}
                self.items[k] = self._apply_update(base, e["update"], names, values)
        return {}


class MemoryBlobStore:
    def __init__(self):
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.fail_delete = False

    def store(self, data, *, content_type: str, file_name: str = "") -> str:
        from procurement.infrastructure.storage.blob_store import make_document_key

        key = make_document_key(file_name=file_name)
        self.blobs[key] = (data.read(), content_type)
        return key

    def retrieve(self, key: str):
        from procurement.errors import NotFound

        if key not in self.blobs:
            raise NotFound(message="File not found in storage", entity="blob", entity_id=key)
        return iter([self.blobs[key][0]])

    def delete(self, key: str) -> bool:
        from procurement.errors import StorageError

        if self.fail_delete:
            raise StorageError(message="simulated outage")
        return self.blobs.pop(key, None) is not None


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture(autouse=True)
def _cheap_password_hashing(monkeypatch):
    from procurement.auth import passwords

    monkeypatch.setattr(passwords, "_ROUNDS", 4)


@pytest.fixture()
def table(monkeypatch):
    from procurement.repositories import documents_repo, responses_repo, rfps_repo, users_repo

    t = FakeTable()
    for mod in (documents_repo, responses_repo, rfps_repo, users_repo):
        monkeypatch.setattr(mod, "get_main_table", lambda: t)
    return t


@pytest.fixture()
def blobs(monkeypatch):
    from procurement.infrastructure.storage import blob_store

    store = MemoryBlobStore()
    monkeypatch.setattr(blob_store, "get_blob_store", lambda: store)
    return store


@pytest.fixture()
def clock(monkeypatch):
    from procurement.domain import clock as clock_mod

    c = Clock(datetime(2030, 1, 15, 12, 0, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(clock_mod, "utcnow", c)
    return c


@pytest.fixture()
def requester():
    from procurement.domain.access_control import Actor
    from procurement.domain.models import Role

    return Actor(id="usr_requester", role=Role.REQUESTER, username="buyer_one")


@pytest.fixture()
def other_requester():
    from procurement.domain.access_control import Actor
    from procurement.domain.models import Role

    return Actor(id="usr_requester_2", role=Role.REQUESTER, username="buyer_two")


@pytest.fixture()
def responder():
    from procurement.domain.access_control import Actor
    from procurement.domain.models import Role

    return Actor(id="usr_responder", role=Role.RESPONDER, username="supplier_one")


@pytest.fixture()
def other_responder():
    from procurement.domain.access_control import Actor
    from procurement.domain.models import Role

    return Actor(id="usr_responder_2", role=Role.RESPONDER, username="supplier_two")


def rfp_payload(clock: Clock, **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "title": "Office network refresh",
        "description": "Replace switches and access points across two floors.",
        "category": "IT Infrastructure",
        "budgetMin": 10000,
        "budgetMax": 25000,
        "deadline": clock.now + timedelta(hours=1),
        "requirements": ["Cisco certified staff"],
        "evaluationCriteria": ["Price", "Experience"],
    }
    body.update(overrides)
    return body


@pytest.fixture()
def make_rfp(table, clock, requester):
    from procurement.services import rfp_lifecycle

    def _make(owner=None, *, publish: bool = False, **overrides: Any) -> dict[str, Any]:
        rfp = rfp_lifecycle.create_rfp(owner or requester, rfp_payload(clock, **overrides))
        if publish:
            rfp = rfp_lifecycle.publish_rfp(rfp["id"], owner or requester)
        return rfp

    return _make
