# printzone/api/auth.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from printzone.db.models.enums import UserRole
from printzone.db.models.user import User
from printzone.services.auth_service import get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])


class UserOut(BaseModel):
    id: int
    login: str
    role: UserRole


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return UserOut(id=user.id, login=user.login, role=user.role)
