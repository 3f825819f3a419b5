"""Session store - versioned reads and conditional writes.

Each call runs in its own short transaction, so nothing is held open
between a coordinator's read and its write. Writes go through
`commit_if_unchanged`, which only applies when the row still carries the
version the caller read; otherwise the caller re-reads and retries.
"""

import asyncio

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vibex.config import settings
from vibex.core.errors import DuplicateVouch, StoreTimeout, StoreUnavailable
from vibex.core.kinds import SessionStatus
from vibex.core.rating_math import BASELINE_RATING
from vibex.models.rating import UserRating
from vibex.models.session import Session
from vibex.models.vouch import Vouch

logger = structlog.get_logger()


class SessionStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self.timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    async def _bounded(self, coro, op: str):
        """Await a store call with a deadline, mapping failures to typed errors."""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("store_timeout", op=op, timeout=self.timeout)
            raise StoreTimeout()
        except SQLAlchemyError as exc:
            logger.error("store_error", op=op, error=str(exc))
            raise StoreUnavailable() from exc

    # --- Reads ---

    async def get_session(self, session_id: int) -> Session | None:
        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(select(Session).where(Session.id == session_id))
                return result.scalar_one_or_none()

        return await self._bounded(_read(), "get_session")

    async def list_sessions(self, status: SessionStatus = SessionStatus.ACTIVE) -> list[Session]:
        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Session)
                    .where(Session.status == status.value)
                    .order_by(Session.event_time.desc(), Session.id.desc())
                )
                return list(result.scalars().all())

        return await self._bounded(_read(), "list_sessions")

    async def get_rating(self, user_id: str) -> UserRating:
        """Get a user's rating row; unrated users get an unsaved baseline (version 0)."""

        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(select(UserRating).where(UserRating.user_id == user_id))
                return result.scalar_one_or_none()

        rating = await self._bounded(_read(), "get_rating")
        if rating is None:
            rating = UserRating(
                user_id=user_id, rating=BASELINE_RATING, session_count=0, version=0
            )
        return rating

    async def count_vouches_between(self, voucher_id: str, receiver_id: str) -> int:
        """Vouches this voucher has given this receiver, across all sessions."""

        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(
                    select(func.count(Vouch.id)).where(
                        Vouch.voucher_id == voucher_id, Vouch.receiver_id == receiver_id
                    )
                )
                return result.scalar_one()

        return await self._bounded(_read(), "count_vouches_between")

    async def count_session_vouches(self, receiver_id: str, session_id: int) -> int:
        """Vouches the receiver has collected in one session."""

        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(
                    select(func.count(Vouch.id)).where(
                        Vouch.receiver_id == receiver_id, Vouch.session_id == session_id
                    )
                )
                return result.scalar_one()

        return await self._bounded(_read(), "count_session_vouches")

    async def vouch_exists(self, voucher_id: str, receiver_id: str, session_id: int) -> bool:
        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Vouch.id).where(
                        Vouch.voucher_id == voucher_id,
                        Vouch.receiver_id == receiver_id,
                        Vouch.session_id == session_id,
                    )
                )
                return result.first() is not None

        return await self._bounded(_read(), "vouch_exists")

    async def list_vouches_received(self, user_id: str) -> list[Vouch]:
        async def _read():
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Vouch)
                    .where(Vouch.receiver_id == user_id)
                    .order_by(Vouch.created_at.desc(), Vouch.id.desc())
                )
                return list(result.scalars().all())

        return await self._bounded(_read(), "list_vouches_received")

    # --- Writes ---

    async def add_session(self, session: Session) -> Session:
        async def _write():
            async with self._session_factory() as db:
                db.add(session)
                await db.commit()
                return session

        return await self._bounded(_write(), "add_session")

    async def commit_if_unchanged(
        self, model, key, expected_version: int, values: dict
    ) -> bool:
        """Apply `values` to the row `key` only if it is still at `expected_version`.

        Returns False on a lost race; the row is untouched in that case.
        """
        pk = model.__mapper__.primary_key[0]

        async def _write():
            async with self._session_factory() as db:
                result = await db.execute(
                    update(model)
                    .where(pk == key, model.version == expected_version)
                    .values(**values, version=expected_version + 1)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                return result.rowcount == 1

        return await self._bounded(_write(), f"commit_if_unchanged:{model.__tablename__}")

    async def commit_vouch(
        self,
        vouch: Vouch,
        expected_rating_version: int,
        rating: int,
        session_count: int,
    ) -> bool:
        """Persist a vouch and the receiver's new rating in one transaction.

        Raises DuplicateVouch if the (voucher, receiver, session) tuple is
        already recorded. Returns False if the rating row moved on since it
        was read; nothing is persisted in either case.
        """

        async def _write():
            async with self._session_factory() as db:
                db.add(vouch)
                try:
                    await db.flush()
                except IntegrityError:
                    await db.rollback()
                    raise DuplicateVouch()

                if expected_rating_version == 0:
                    db.add(
                        UserRating(
                            user_id=vouch.receiver_id,
                            rating=rating,
                            session_count=session_count,
                            version=1,
                        )
                    )
                    try:
                        await db.flush()
                    except IntegrityError:
                        # Someone created the rating row first
                        await db.rollback()
                        return False
                else:
                    result = await db.execute(
                        update(UserRating)
                        .where(
                            UserRating.user_id == vouch.receiver_id,
                            UserRating.version == expected_rating_version,
                        )
                        .values(
                            rating=rating,
                            session_count=session_count,
                            version=expected_rating_version + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        await db.rollback()
                        return False

                await db.commit()
                return True

        return await self._bounded(_write(), "commit_vouch")

