from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, EmailStr, Field

from ..domain.access_control import Actor
from ..services import accounts
from .deps import current_actor

router = APIRouter(tags=["auth"])


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str
    # The original client posts snake_case for these.
    fullName: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("fullName", "full_name"))
    organizationName: str | None = Field(
        None, max_length=100, validation_alias=AliasChoices("organizationName", "company_name")
    )
    phone: str | None = Field(None, max_length=30)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ProfileUpdateRequest(BaseModel):
    fullName: str | None = Field(None, max_length=100, validation_alias=AliasChoices("fullName", "full_name"))
    organizationName: str | None = Field(
        None, max_length=100, validation_alias=AliasChoices("organizationName", "company_name")
    )
    phone: str | None = Field(None, max_length=30)


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6)


@router.post("/register", status_code=201)
def register(body: RegisterRequest):
    session = accounts.register(
        username=body.username,
        email=str(body.email),
        password=body.password,
        role=body.role,
        full_name=body.fullName,
        organization_name=body.organizationName,
        phone=body.phone,
    )
    return {"message": "User registered successfully", **session}


@router.post("/login")
def login(body: LoginRequest):
    session = accounts.login(username=body.username, password=body.password)
    return {"message": "Login successful", **session}


@router.get("/me")
def me(actor: Actor = Depends(current_actor)):
    return {"message": "User information retrieved successfully", "user": accounts.get_me(actor.id)}


@router.put("/profile")
def update_profile(body: ProfileUpdateRequest, actor: Actor = Depends(current_actor)):
    user = accounts.update_profile(actor.id, body.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": user}


@router.put("/change-password")
def change_password(body: ChangePasswordRequest, actor: Actor = Depends(current_actor)):
    accounts.change_password(actor.id, current_password=body.currentPassword, new_password=body.newPassword)
    return {"message": "Password changed successfully"}


@router.post("/logout")
def logout(actor: Actor = Depends(current_actor)):
    # Tokens are stateless; the client discards its copy.
    return {"message": "Logout successful"}
