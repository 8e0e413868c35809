"""
Authentication routes (login, logout, current user)
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_current_user, get_db
from tesoreria.auth import authenticate
from tesoreria.application.users import serialize_user
from tesoreria.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login")
def login(request: Request, req: LoginRequest, db: Session = Depends(get_db)):
    """Iniciar sesión; guarda user_id en la sesión"""
    user = authenticate(db, req.email, req.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email o contraseña incorrectos",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tu cuenta ha sido desactivada",
        )

    request.session["user_id"] = user.id
    return {"user": serialize_user(user)}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"message": "Sesión cerrada"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": serialize_user(user)}
