"""
api/routes/v1/users.py -- Principal administration REST endpoints.

Routes:
  GET    /api/v1/users                -- list principals (admin); filters + pagination
  GET    /api/v1/users/{id}           -- one principal (any authenticated caller)
  POST   /api/v1/users                -- create principal (admin); 201
  PATCH  /api/v1/users/{id}           -- update fullname/level/active (admin)
  PUT    /api/v1/users/{id}/password  -- reset password (admin)
  DELETE /api/v1/users/{id}           -- delete principal (admin); 204

Security:
  [M4] Admins cannot deactivate, demote or delete their own account, and
       cannot grant any account (their own included) a level above theirs.
  [M6] Responses are built from PublicPrincipal; no hash ever leaves the core.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import (
    MessageResponse,
    PasswordReset,
    PrincipalResponse,
    UserCreate,
    UserListResponse,
    UserPatch,
)
from auth.accounts import AccountService
from auth.dependencies import get_claims, require_admin
from auth.models import MAX_LEVEL, MIN_LEVEL, AccessClaims

router = APIRouter()


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def _refuse_self(claims: AccessClaims, user_id: str, message: str) -> None:
    if claims.id == user_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_modification", "message": message},
        )


def _refuse_above(claims: AccessClaims, level: Optional[int]) -> None:
    if level is not None and level > claims.level:
        raise HTTPException(
            status_code=403,
            detail={"code": "insufficient_level", "message": "You cannot grant a level above your own."},
        )


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    active: Optional[bool] = None,
    level: Optional[int] = Query(default=None, ge=MIN_LEVEL, le=MAX_LEVEL),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    admin: AccessClaims = Depends(require_admin),
) -> UserListResponse:
    users, total = _accounts(request).list_principals(active=active, level=level, page=page, limit=limit)
    return UserListResponse(
        users=[PrincipalResponse.from_principal(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/users/{user_id}", response_model=PrincipalResponse)
def get_user(
    request: Request,
    user_id: str,
    claims: AccessClaims = Depends(get_claims),
) -> PrincipalResponse:
    return PrincipalResponse.from_principal(_accounts(request).get(user_id))


@router.post("/users", response_model=PrincipalResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    admin: AccessClaims = Depends(require_admin),
) -> PrincipalResponse:
    """Create a principal.

    New accounts start with must_change_password set, so their first login
    yields a password-change token. The password policy is checked before
    anything is written (400 "password_policy"); duplicates return 409.
    """
    _refuse_above(admin, body.level)  # [M4]
    created = _accounts(request).create(
        username=body.username,
        email=body.email,
        fullname=body.fullname,
        password=body.password,
        level=body.level,
        active=body.active,
    )
    return PrincipalResponse.from_principal(created)


@router.patch("/users/{user_id}", response_model=PrincipalResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    admin: AccessClaims = Depends(require_admin),
) -> PrincipalResponse:
    """Update fullname, level or active. Deactivation ends the principal's sessions."""
    if body.active is False:
        _refuse_self(admin, user_id, "You cannot deactivate your own account.")  # [M4]
    if body.level is not None and body.level < admin.level:
        _refuse_self(admin, user_id, "You cannot lower your own level.")  # [M4]
    _refuse_above(admin, body.level)  # [M4]
    updated = _accounts(request).update(user_id, fullname=body.fullname, level=body.level, active=body.active)
    return PrincipalResponse.from_principal(updated)


@router.put("/users/{user_id}/password", response_model=MessageResponse)
def reset_password(
    request: Request,
    user_id: str,
    body: PasswordReset,
    admin: AccessClaims = Depends(require_admin),
) -> MessageResponse:
    _accounts(request).reset_password(user_id, body.password)
    return MessageResponse(message="Password updated.")


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: str,
    admin: AccessClaims = Depends(require_admin),
) -> Response:
    _refuse_self(admin, user_id, "You cannot delete your own account.")  # [M4]
    _accounts(request).delete(user_id)
    return Response(status_code=204)
