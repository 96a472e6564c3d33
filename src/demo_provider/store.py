from threading import Lock

from demo_provider.api.user.models import User, UserRequest, UserRole


class UserStore:
    """In-memory user store shared by the provider app and the provider-states service"""

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._next_id = 1
        self._lock = Lock()

    def reset(self) -> None:
        with self._lock:
            self._users.clear()
            self._next_id = 1

    def add(self, data: UserRequest, user_id: int | None = None) -> User:
        """Add a user. An existing user with the same ID is replaced"""
        with self._lock:
            if user_id is None:
                user_id = self._next_id
            user = User(id=user_id, **data.model_dump())
            self._users[user_id] = user
            self._next_id = max(self._next_id, user_id + 1)
            return user

    def get(self, user_id: int) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def find(self, role: UserRole | None = None) -> list[User]:
        with self._lock:
            return [u for _, u in sorted(self._users.items()) if role is None or u.role == role]

    def delete(self, user_id: int) -> User | None:
        with self._lock:
            return self._users.pop(user_id, None)


users = UserStore()
