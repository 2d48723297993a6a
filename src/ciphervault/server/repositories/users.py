# users 表的读写 (账户存储)
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from ..errors import InvalidInput, UsernameAlreadyExists
from ..models import User, UserEdit, UserFilter, UserListFilter, utcnow


class UserRepo:
    def __init__(self, session: Session):
        self.session = session

    def _where(self, statement, pars: UserFilter):
        if pars.user_id:
            statement = statement.where(User.id == pars.user_id)
        if pars.username:
            statement = statement.where(User.username == pars.username)
        return statement

    def get(self, pars: UserFilter) -> Tuple[Optional[User], bool]:
        if not pars.is_valid():
            raise InvalidInput("filter must set user_id or username")

        user = self.session.exec(self._where(select(User), pars).limit(1)).first()
        if user is None:
            return None, False
        return user, True

    def list(self, pars: UserListFilter) -> Tuple[List[User], int]:
        statement = select(User)
        if pars.user_id:
            statement = statement.where(User.id == pars.user_id)
        if pars.user_ids is not None:
            statement = statement.where(col(User.id).in_(pars.user_ids))
        if pars.username:
            statement = statement.where(User.username == pars.username)
        if pars.created_before is not None:
            statement = statement.where(User.created_at <= pars.created_before)
        if pars.created_after is not None:
            statement = statement.where(User.created_at >= pars.created_after)
        if pars.updated_before is not None:
            statement = statement.where(User.updated_at <= pars.updated_before)
        if pars.updated_after is not None:
            statement = statement.where(User.updated_at >= pars.updated_after)

        users = list(self.session.exec(statement.order_by(col(User.created_at))).all())
        return users, len(users)

    def create(self, username: str, password_hash: str) -> User:
        user = User(username=username, password_hash=password_hash)
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise UsernameAlreadyExists(f"username {username} already registered") from e
        self.session.refresh(user)
        return user

    def update(self, pars: UserFilter, obj: UserEdit) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set user_id or username")

        changes = obj.changes()
        if not changes:
            return

        for user in self.session.exec(self._where(select(User), pars)).all():
            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            self.session.add(user)
        self.session.commit()

    def delete(self, pars: UserFilter) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set user_id or username")

        for user in self.session.exec(self._where(select(User), pars)).all():
            self.session.delete(user)
        self.session.commit()

    def exists(self, pars: UserFilter) -> bool:
        if not pars.is_valid():
            raise InvalidInput("filter must set user_id or username")

        statement = self._where(select(User.id), pars).limit(1)
        return self.session.exec(statement).first() is not None
