# src/fedgate_backend/app/services/users.py
from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel


class DemoUser(BaseModel):
    id: str
    name: str
    email: str
    createdAt: str


class InMemoryUserRepository:
    """
    Process-local user store for the demo endpoints.
    One instance per application (app.state.users); not identity data.
    """

    def __init__(self) -> None:
        self._users: Dict[str, DemoUser] = {}
        self._lock = threading.Lock()

    def list(self) -> List[DemoUser]:
        with self._lock:
            return list(self._users.values())

    def get(self, user_id: str) -> Optional[DemoUser]:
        with self._lock:
            return self._users.get(user_id)

    def create(self, name: str, email: str) -> DemoUser:
        with self._lock:
            user_id = str(time.time_ns() // 1_000_000)
            while user_id in self._users:
                user_id = str(int(user_id) + 1)
            user = DemoUser(
                id=user_id,
                name=name,
                email=email,
                createdAt=datetime.now(timezone.utc).isoformat(),
            )
            self._users[user_id] = user
            return user
