from fastapi import APIRouter

from app.dependencies.userDependencies import auth_context_dependency, user_dependency
from app.modules.auth.schemas import AuthContext, MeResponse, UserOut

auth_router = APIRouter()


@auth_router.get("/me", response_model=MeResponse)
async def get_me(user: user_dependency):
    """Profile of the authenticated user and the cooperative they belong to."""
    return MeResponse(
        user=UserOut.model_validate(user),
        cooperative_id=user.cooperative_id,
        cooperative_name=user.cooperative.name if user.cooperative else None
    )


@auth_router.get("/context", response_model=AuthContext)
async def get_context(auth_context: auth_context_dependency):
    """Effective cooperative scope for the current request."""
    return auth_context
