from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..accounts import authenticate, register_user
from ..database import get_db
from ..models import User
from ..schemas import LoginIn, RegisterIn
from ..utils import create_access_token, get_current_user

router = APIRouter()


def user_to_dict(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@router.post("/register", status_code=201)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    settings = request.app.state.settings
    user = register_user(db, settings, payload.name, payload.email, payload.password)
    return {"token": create_access_token(settings, user), "user": user_to_dict(user)}


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    return {"token": create_access_token(request.app.state.settings, user), "user": user_to_dict(user)}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"user": user_to_dict(current_user)}
