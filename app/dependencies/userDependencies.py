from typing import Annotated
from fastapi import Depends
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.models import User
from app.modules.auth.schemas import AuthContext

user_dependency = Annotated[User, Depends(AuthDependencies.get_current_user)]
auth_context_dependency = Annotated[AuthContext, Depends(AuthDependencies.require_any_role())]
