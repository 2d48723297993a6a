# 注册、登录接口以及当前用户依赖
from fastapi import APIRouter, Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from sqlmodel import Session

from ...core.models import AccountRequest, MessageResponse, Token
from ..config import Settings
from ..database import get_session
from ..errors import Unauthenticated
from ..models import User, UserFilter
from ..repositories.users import UserRepo
from ..security import decode_access_token
from ..services.users import UserService

router = APIRouter()


class UserRead(BaseModel):
    id: str
    username: str


class UserCheckResponse(BaseModel):
    exists: bool


# --- 依赖 ---

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> UserService:
    return UserService(UserRepo(session), settings)


# 从请求头 Authorization: Bearer <token> 中提取 token，缺失时直接返回 401
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> User:
    user_id = decode_access_token(token, settings)

    user, found = UserRepo(session).get(UserFilter(user_id=user_id))
    if not found:
        raise Unauthenticated("Could not validate credentials")
    return user


# --- API 接口 ---

@router.get("/check/{username}", response_model=UserCheckResponse)
def check_user_exists(username: str, service: UserService = Depends(get_user_service)):
    return {"exists": service.is_login_taken(username)}


@router.post("/register", response_model=MessageResponse)
def register(user_in: AccountRequest, service: UserService = Depends(get_user_service)):
    service.register(user_in.username, user_in.password)
    return MessageResponse(message="ok")


@router.post("/login", response_model=Token)
def login(user_in: AccountRequest, service: UserService = Depends(get_user_service)):
    access_token = service.login(user_in.username, user_in.password)
    return Token(access_token=access_token)


@router.get("/me", response_model=UserRead)
def read_users_me(current_user: User = Depends(get_current_user)):
    return UserRead(id=current_user.id, username=current_user.username)
