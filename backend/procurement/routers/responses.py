from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..domain.access_control import Actor
from ..services import response_lifecycle
from .deps import current_actor

router = APIRouter(tags=["responses"])


class ResponseCreateRequest(BaseModel):
    rfpId: str = Field(..., min_length=1)
    proposal: str = Field(..., min_length=10, max_length=10000)
    proposedBudget: float | None = Field(None, ge=0, allow_inf_nan=False)
    timeline: str | None = Field(None, max_length=1000)
    methodology: str | None = Field(None, max_length=5000)
    teamDetails: str | None = Field(None, max_length=3000)
    additionalNotes: str | None = Field(None, max_length=2000)
    status: str | None = None


class ResponseUpdateRequest(BaseModel):
    proposal: str | None = Field(None, min_length=10, max_length=10000)
    proposedBudget: float | None = Field(None, ge=0, allow_inf_nan=False)
    timeline: str | None = Field(None, max_length=1000)
    methodology: str | None = Field(None, max_length=5000)
    teamDetails: str | None = Field(None, max_length=3000)
    additionalNotes: str | None = Field(None, max_length=2000)
    status: str | None = None


class ReviewRequest(BaseModel):
    status: str
    reviewerNotes: str | None = Field(None, max_length=2000)


@router.get("")
def list_responses(status: str | None = None, rfpId: str | None = None, actor: Actor = Depends(current_actor)):
    return {"data": response_lifecycle.list_responses(actor, status=status, rfp_id=rfpId)}


@router.post("", status_code=201)
def create_response(body: ResponseCreateRequest, actor: Actor = Depends(current_actor)):
    response = response_lifecycle.create_response(actor, body.model_dump(exclude_none=True))
    return {"message": "Response created successfully", "data": response}


@router.get("/{response_id}")
def get_response(response_id: str, actor: Actor = Depends(current_actor)):
    return {"data": response_lifecycle.get_response(response_id, actor)}


@router.put("/{response_id}")
def update_response(response_id: str, body: ResponseUpdateRequest, actor: Actor = Depends(current_actor)):
    response = response_lifecycle.update_response(response_id, actor, body.model_dump(exclude_unset=True))
    return {"message": "Response updated successfully", "data": response}


@router.delete("/{response_id}")
def delete_response(response_id: str, actor: Actor = Depends(current_actor)):
    response_lifecycle.delete_response(response_id, actor)
    return {"message": "Response deleted successfully"}


@router.post("/{response_id}/submit")
def submit_response(response_id: str, actor: Actor = Depends(current_actor)):
    return {"message": "Response submitted successfully", "data": response_lifecycle.submit_response(response_id, actor)}


@router.post("/{response_id}/review")
def review_response(response_id: str, body: ReviewRequest, actor: Actor = Depends(current_actor)):
    response = response_lifecycle.review_response(
        response_id, actor, outcome=body.status, reviewer_notes=body.reviewerNotes
    )
    return {"message": "Response reviewed successfully", "data": response}
