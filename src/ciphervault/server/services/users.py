# 注册 / 登录
import logging

from ..config import Settings
from ..errors import InvalidInput, InvalidPassword, UsernameAlreadyExists, UserNotFound
from ..models import UserFilter
from ..repositories.users import UserRepo
from ..security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, repo_db: UserRepo, settings: Settings):
        self.repo_db = repo_db
        self.settings = settings

    def is_login_taken(self, username: str) -> bool:
        return self.repo_db.exists(UserFilter(username=username))

    def register(self, username: str, password: str) -> None:
        if not username or not password:
            raise InvalidInput("username and password are required")

        # 1. 检查用户名是否已存在
        if self.is_login_taken(username):
            raise UsernameAlreadyExists(f"username {username} already registered")

        # 2. 创建新用户，只保存密码哈希
        user = self.repo_db.create(username, get_password_hash(password))
        logger.info("Registered user %s (id=%s)", username, user.id)

    def login(self, username: str, password: str) -> str:
        if not username or not password:
            raise InvalidInput("username and password are required")

        # 1. 查找用户
        user, found = self.repo_db.get(UserFilter(username=username))
        if not found:
            raise UserNotFound(f"user {username} not found")

        # 2. 验证密码
        if not verify_password(password, user.password_hash):
            logger.info("Rejected login for user %s: invalid password", username)
            raise InvalidPassword("invalid password")

        # 3. 生成 Token，绑定用户 id
        return create_access_token(subject=user.id, settings=self.settings)
