"""Read-only lookup of users owned by the account service."""

from dataclasses import dataclass
from typing import Any

from brand_alerts.storage.database import Database


@dataclass(frozen=True)
class User:
    """Recipient identity as exposed by the account service."""

    id: str
    email: str
    role: str = "analyst"
    phone: str | None = None


class UserDirectory:
    """Resolves user ids to contact details from the ``users`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_user(self, user_id: str) -> User | None:
        row = await self._db.fetchrow(
            "SELECT id, email, role, phone FROM users WHERE id = $1", user_id,
        )
        if row is None:
            return None
        return _row_to_user(row)


def _row_to_user(row: Any) -> User:
    return User(
        id=str(row["id"]),
        email=row["email"],
        role=row.get("role") or "analyst",
        phone=row.get("phone"),
    )
