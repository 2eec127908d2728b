from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..domain.access_control import Actor
from ..services import rfp_lifecycle
from .deps import current_actor, optional_actor

router = APIRouter(tags=["rfps"])

Requirement = Annotated[str, Field(max_length=500)]


class RfpCreateRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    category: str = Field(..., min_length=2, max_length=100)
    budgetMin: float | None = Field(None, ge=0, allow_inf_nan=False)
    budgetMax: float | None = Field(None, ge=0, allow_inf_nan=False)
    deadline: datetime
    requirements: list[Requirement] = Field(default_factory=list)
    evaluationCriteria: list[Requirement] = Field(default_factory=list)
    termsAndConditions: str | None = Field(None, max_length=10000)


class RfpUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=5, max_length=200)
    description: str | None = Field(None, min_length=10, max_length=5000)
    category: str | None = Field(None, min_length=2, max_length=100)
    budgetMin: float | None = Field(None, ge=0, allow_inf_nan=False)
    budgetMax: float | None = Field(None, ge=0, allow_inf_nan=False)
    deadline: datetime | None = None
    requirements: list[Requirement] | None = None
    evaluationCriteria: list[Requirement] | None = None
    termsAndConditions: str | None = Field(None, max_length=10000)
    status: str | None = None


@router.get("")
def list_rfps(
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
    mine: bool = False,
    limit: int = Query(20, ge=1, le=100),
    nextToken: str | None = None,
    actor: Actor | None = Depends(optional_actor),
):
    return rfp_lifecycle.list_rfps(
        actor,
        status=status,
        category=category,
        search=search,
        mine=mine,
        limit=limit,
        next_token=nextToken,
    )


@router.post("", status_code=201)
def create_rfp(body: RfpCreateRequest, actor: Actor = Depends(current_actor)):
    rfp = rfp_lifecycle.create_rfp(actor, body.model_dump())
    return {"message": "RFP created successfully", "data": rfp}


@router.get("/{rfp_id}")
def get_rfp(rfp_id: str, actor: Actor | None = Depends(optional_actor)):
    return {"data": rfp_lifecycle.get_rfp(rfp_id, actor)}


@router.put("/{rfp_id}")
def update_rfp(rfp_id: str, body: RfpUpdateRequest, actor: Actor = Depends(current_actor)):
    rfp = rfp_lifecycle.update_rfp(rfp_id, actor, body.model_dump(exclude_unset=True))
    return {"message": "RFP updated successfully", "data": rfp}


@router.delete("/{rfp_id}")
def delete_rfp(rfp_id: str, actor: Actor = Depends(current_actor)):
    rfp_lifecycle.delete_rfp(rfp_id, actor)
    return {"message": "RFP deleted successfully"}


@router.post("/{rfp_id}/publish")
def publish_rfp(rfp_id: str, actor: Actor = Depends(current_actor)):
    return {"message": "RFP published successfully", "data": rfp_lifecycle.publish_rfp(rfp_id, actor)}


@router.post("/{rfp_id}/close")
def close_rfp(rfp_id: str, actor: Actor = Depends(current_actor)):
    return {"message": "RFP closed successfully", "data": rfp_lifecycle.close_rfp(rfp_id, actor)}


@router.get("/{rfp_id}/responses")
def list_rfp_responses(rfp_id: str, actor: Actor = Depends(current_actor)):
    return {"data": rfp_lifecycle.list_rfp_responses(rfp_id, actor)}
