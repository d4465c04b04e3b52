"""
Admin router — role management.

PATCH /admin/users/{user_id}/role — ADMIN only
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from promptiq.auth.dependencies import authenticate, authorize
from promptiq.auth.principal import UserPrincipal
from promptiq.auth.roles import Role
from promptiq.models.user import User
from promptiq.schemas.auth import RoleUpdate, UserOut
from promptiq.services.credential_store import CredentialStore, get_credential_store

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(authenticate), Depends(authorize(Role.ADMIN))],
)

Store = Annotated[CredentialStore, Depends(get_credential_store)]
CurrentUser = Annotated[UserPrincipal, Depends(authenticate)]


@router.patch(
    "/users/{user_id}/role",
    response_model=UserOut,
    summary="Change a user's role",
)
async def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    store: Store,
    principal: CurrentUser,
) -> User:
    user = await store.set_user_role(user_id, payload.role.value)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    logger.info("User %s set role of %s to %s", principal.id, user_id, payload.role.value)
    return user
