"""
Authentication dependencies for FastAPI.
"""
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from app.database.database import get_db
from app.modules.auth.models import User, UserRole
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import decode_access_token

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Reusable authentication dependencies."""

    @staticmethod
    def _load_user(credentials: HTTPAuthorizationCredentials, db: Session) -> User:
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_access_token(credentials.credentials)
            user_id = UUID(str(payload.get("sub")))
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        user = db.query(User).filter(User.id == user_id).first()

        if user is None or not user.is_active:
            raise credentials_exception

        return user

    @staticmethod
    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> User:
        """Current user from the bearer token, without cooperative context."""
        return AuthDependencies._load_user(credentials, db)

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Full authentication context.

        The effective cooperative comes from X-Cooperative-ID (validated by
        CooperativeMiddleware). Cooperative admins are always pinned to their
        own cooperative.
        """
        user = AuthDependencies._load_user(credentials, db)

        requested: Optional[UUID] = getattr(request.state, "cooperative_id", None)
        if requested is None and request.headers.get("X-Cooperative-ID"):
            try:
                requested = UUID(request.headers["X-Cooperative-ID"])
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invalid cooperative id"
                )

        if user.role == UserRole.ADMIN_KOPERASI:
            if user.cooperative_id is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="User is not assigned to a cooperative"
                )
            if requested and not user.can_access_cooperative(requested):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Access to this cooperative is not allowed"
                )
            cooperative_id = user.cooperative_id
        else:
            cooperative_id = requested

        return AuthContext(
            user_id=user.id,
            user_name=user.name,
            user_role=user.role.value,
            user_cooperative_id=user.cooperative_id,
            cooperative_id=cooperative_id
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependency factory requiring one of the given roles.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"One of these roles is required: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_admin_dinas():
        """Only the supervising office (Dinas Koperasi)."""
        return AuthDependencies.require_role([UserRole.ADMIN_DINAS.value])

    @staticmethod
    def require_any_role():
        """Any active role."""
        return AuthDependencies.require_role([role.value for role in UserRole])


# Dependency instances
get_current_user = AuthDependencies.get_current_user
get_auth_context = AuthDependencies.get_auth_context
require_admin_dinas = AuthDependencies.require_admin_dinas
require_any_role = AuthDependencies.require_any_role
