"""
Ownership and visibility policy.

Everything here is a side-effect-free predicate over plain entity dicts (the
shape repositories return) and an `Actor`. The `ensure_*` helpers wrap the
predicates and raise the matching domain error so services stay linear.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import Forbidden, RoleNotPermitted
from . import clock
from .models import Role, RFPStatus, normalize_role


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    role: Role
    username: str | None = None

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> "Actor":
        role = normalize_role(user.get("role"))
        if role is None:
            raise Forbidden(message="Account has no valid role", entity="user", entity_id=user.get("id"))
        return cls(id=str(user.get("id")), role=role, username=user.get("username"))

    @property
    def is_requester(self) -> bool:
        return self.role == Role.REQUESTER

    @property
    def is_responder(self) -> bool:
        return self.role == Role.RESPONDER


def _owner_of(entity: dict[str, Any]) -> str | None:
    # RFPs are owned by their creator, Responses by their submitter.
    owner = entity.get("createdBy") or entity.get("submittedBy")
    return str(owner) if owner else None


def _is(actor: Actor | None, user_id: Any) -> bool:
    return actor is not None and bool(user_id) and actor.id == str(user_id)


def can_view_rfp(rfp: dict[str, Any], actor: Actor | None) -> bool:
    if rfp.get("status") != RFPStatus.DRAFT:
        return True
    return _is(actor, rfp.get("createdBy"))


def is_listed_for(rfp: dict[str, Any], actor: Actor | None) -> bool:
    """
    Listing filter. Responders only browse open calls (published and not past
    deadline); anyone else sees what they could retrieve directly.
    """
    if actor is not None and actor.is_responder:
        return rfp.get("status") == RFPStatus.PUBLISHED and not clock.is_past(rfp.get("deadline"))
    return can_view_rfp(rfp, actor)


def can_mutate(entity: dict[str, Any], actor: Actor | None) -> bool:
    return _is(actor, _owner_of(entity))


def can_review(response: dict[str, Any], rfp: dict[str, Any], actor: Actor | None) -> bool:
    return _is(actor, rfp.get("createdBy"))


def can_upload_to(parent: dict[str, Any], actor: Actor | None) -> bool:
    return _is(actor, _owner_of(parent))


def can_view_response(response: dict[str, Any], rfp: dict[str, Any] | None, actor: Actor | None) -> bool:
    if _is(actor, response.get("submittedBy")):
        return True
    return rfp is not None and _is(actor, rfp.get("createdBy"))


def can_access_document(document: dict[str, Any], parent: dict[str, Any] | None, actor: Actor | None) -> bool:
    if _is(actor, document.get("uploadedBy")):
        return True
    return parent is not None and _is(actor, _owner_of(parent))


# --- raising helpers ---


def require_role(actor: Actor, role: Role, *, action: str) -> None:
    if actor.role != role:
        raise RoleNotPermitted(
            message=f"Only {role.value}s can {action}",
            details={"role": actor.role.value, "required": role.value},
        )


def ensure_owner(entity: dict[str, Any], actor: Actor, *, entity_name: str) -> None:
    if not can_mutate(entity, actor):
        raise Forbidden(
            message=f"Not authorized to modify this {entity_name}",
            entity=entity_name,
            entity_id=entity.get("id"),
        )
