import re
import threading
from typing import Any, Iterable, List, Optional
from pydantic import BaseModel


class User(BaseModel):
    id: int
    # Stored exactly as sent, no type checks
    name: Any = None
    email: Any = None


SEED_USERS = [
    {"id": 1, "name": "Alice", "email": "alice@example.com"},
    {"id": 2, "name": "Bob", "email": "bob@example.com"},
]

_ID_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")


def parse_user_id(raw: str) -> Optional[int]:
    """Parse the leading base-10 integer of a path segment.

    "12abc" gives 12, "abc" gives None. None never matches a stored id.
    """
    match = _ID_PREFIX.match(raw)
    if not match:
        return None
    return int(match.group(1))


class UserStore:
    """
    In-memory user storage, owned by the application.

    Keeps insertion order. Ids come from a counter that only goes up, so an
    id freed by a delete is never handed out again.
    """

    def __init__(self, users: Optional[Iterable[User]] = None):
        self._users: List[User] = list(users or [])
        self._next_id = max((u.id for u in self._users), default=0) + 1
        self._lock = threading.Lock()

    @classmethod
    def seeded(cls) -> "UserStore":
        return cls(User(**data) for data in SEED_USERS)

    def __len__(self) -> int:
        return len(self._users)

    def list_all(self) -> List[User]:
        with self._lock:
            return list(self._users)

    def get(self, user_id: Optional[int]) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users if u.id == user_id), None)

    def create(self, name: Any, email: Any) -> User:
        with self._lock:
            user = User(id=self._next_id, name=name, email=email)
            self._next_id += 1
            self._users.append(user)
            return user

    def update(self, user_id: Optional[int], name: Any, email: Any) -> Optional[User]:
        with self._lock:
            user = next((u for u in self._users if u.id == user_id), None)
            if user is None:
                return None
            user.name = name
            user.email = email
            return user

    def delete(self, user_id: Optional[int]) -> int:
        """Remove every user with this id. Returns how many were removed."""
        with self._lock:
            kept = [u for u in self._users if u.id != user_id]
            removed = len(self._users) - len(kept)
            self._users = kept
            return removed
