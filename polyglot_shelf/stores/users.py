"""
User Repository (PostgreSQL)

Normalized user records. The warehouse loader reads the same table through
its own transaction; this repository serves request traffic.
"""

from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from polyglot_shelf.database.connection import acquire_advisory_xact_lock, session_scope
from polyglot_shelf.database.models import User

logger = structlog.get_logger(__name__)


def user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "name": user.name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class UserRepository:
    """
    CRUD access to the ``users`` table.

    Example:
        repo = UserRepository(engine, session_factory)
        user = await repo.find_or_create("user-123-demo", "Demo User")
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.engine = engine
        self.session_factory = session_factory

    async def ensure_schema(self, lock_key: Optional[int] = None) -> None:
        """
        Create the users table if it does not exist.

        With ``lock_key`` the check and CREATE run under a PostgreSQL
        advisory lock, so workers starting together do not race.
        """
        async with self.engine.begin() as conn:
            if lock_key is not None:
                await acquire_advisory_xact_lock(conn, lock_key)
            await conn.run_sync(User.__table__.create, checkfirst=True)

    async def get(self, user_id: str) -> Optional[Dict]:
        """Fetch one user, or None."""
        async with session_scope(self.session_factory) as db:
            user = await db.get(User, user_id)
            return user_to_dict(user) if user else None

    async def find_or_create(self, user_id: str, name: str) -> Dict:
        """
        Return the user with this id, inserting it first if missing.

        An existing user keeps its stored name.
        """
        async with session_scope(self.session_factory) as db:
            user = await db.get(User, user_id)
            if user is None:
                user = User(id=user_id, name=name)
                db.add(user)
                await db.flush()
                await db.refresh(user)
                logger.info("User created", user_id=user_id)
            return user_to_dict(user)

    async def list_all(self) -> List[Dict]:
        """All users ordered by id."""
        async with session_scope(self.session_factory) as db:
            result = await db.execute(select(User).order_by(User.id))
            return [user_to_dict(u) for u in result.scalars().all()]

    async def reset(self, users: Iterable[Dict[str, str]]) -> int:
        """
        Drop and recreate the users table, then insert the given rows.

        Used by the seeding script only.
        """
        rows = list(users)
        async with self.engine.begin() as conn:
            await conn.run_sync(User.__table__.drop, checkfirst=True)
            await conn.run_sync(User.__table__.create)
        async with session_scope(self.session_factory) as db:
            db.add_all([User(id=row["id"], name=row["name"]) for row in rows])
        logger.info("Users table reset", rows=len(rows))
        return len(rows)
