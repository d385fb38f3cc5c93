from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Query, status
from uuid import UUID
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext


def resolve_cooperative_id(
    auth_context: AuthContext,
    requested_id: Optional[UUID] = None,
    required: bool = True
) -> Optional[UUID]:
    """
    Pick the cooperative an operation runs against.

    Cooperative admins are always pinned to their own cooperative; asking for
    another one is forbidden. Oversight users may target any cooperative through
    the explicit id or the X-Cooperative-ID header.
    """
    if auth_context.user_role == "admin_koperasi":
        own_id = auth_context.user_cooperative_id
        if requested_id and requested_id != own_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access to this cooperative is not allowed"
            )
        return own_id

    cooperative_id = requested_id or auth_context.cooperative_id
    if cooperative_id is None and required:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A cooperative must be selected (cooperative_id or X-Cooperative-ID header)"
        )
    return cooperative_id


def get_cooperative_id(
    cooperative_id: Optional[UUID] = Query(None, description="Target cooperative (oversight users only)"),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
) -> UUID:
    return resolve_cooperative_id(auth_context, cooperative_id)


def get_optional_cooperative_id(
    cooperative_id: Optional[UUID] = Query(None, description="Filter by cooperative"),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
) -> Optional[UUID]:
    return resolve_cooperative_id(auth_context, cooperative_id, required=False)


CooperativeId = Annotated[UUID, Depends(get_cooperative_id)]
OptionalCooperativeId = Annotated[Optional[UUID], Depends(get_optional_cooperative_id)]
