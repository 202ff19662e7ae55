"""
Unit of work bound to a single pooled connection.

A Session owns one connection and the transaction running on it. Entities
attached to the session are live handles: mutate them and the changes are
written when the session flushes, which always happens right before commit.

The session opened most recently in the current context is available
through current_session(), which is how repository operations that must run
inside a caller's transaction find it.
"""

from contextvars import ContextVar
from typing import Protocol, TypeVar

import psycopg
from pydantic import BaseModel

from tickle_repo.core.errors import IllegalStateError, ValidationError
from tickle_repo.observability.logger import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_current: ContextVar["Session | None"] = ContextVar("tickle_repo_session", default=None)


class EntityWriter(Protocol):
    """Loads and writes single entities on behalf of a session."""

    def load(self, conn: psycopg.Connection, model: type[M], entity_id: int) -> M | None: ...

    def write(self, conn: psycopg.Connection, entity: BaseModel) -> None: ...


class Session:
    """
    Identity map and dirty tracking over one connection.

    Args:
        pool: Pool the connection was borrowed from
        conn: Connection owned by this session
        writer: Loads snapshots and writes dirty entities
    """

    def __init__(self, pool, conn: psycopg.Connection, writer: EntityWriter):
        self.pool = pool
        self.conn = conn
        self._writer = writer
        self._attached: dict[tuple[type, int], tuple[BaseModel, dict]] = {}
        self._active = True

    @property
    def active(self) -> bool:
        return self._active and not self.conn.closed

    def attach(self, entity: M) -> M:
        """
        Make entity a live handle of this session.

        If an instance with the same identity is already attached, the state
        of entity is copied onto it and the attached instance is returned.
        Otherwise the stored row is loaded as the clean snapshot, so any
        difference between it and entity is written on flush.

        Raises:
            ValidationError: If entity has no id or no stored row
            IllegalStateError: If the session is no longer active
        """
        self._require_active()
        if entity.id is None:
            raise ValidationError(f"Cannot attach unsaved {type(entity).__name__}")

        key = (type(entity), entity.id)
        attached = self._attached.get(key)
        if attached is not None:
            managed, snapshot = attached
            if managed is not entity:
                for field in type(entity).model_fields:
                    setattr(managed, field, getattr(entity, field))
            return managed

        stored = self._writer.load(self.conn, type(entity), entity.id)
        if stored is None:
            raise ValidationError(f"{type(entity).__name__} {entity.id} does not exist")
        self._attached[key] = (entity, stored.model_dump())
        return entity

    def register(self, entity: M) -> M:
        """
        Attach an entity that was just read from this session's connection.

        An already attached instance is refreshed in place and returned, so
        callers always hold the single live handle for a row.
        """
        key = (type(entity), entity.id)
        attached = self._attached.get(key)
        if attached is None:
            self._attached[key] = (entity, entity.model_dump())
            return entity

        managed, _ = attached
        for field in type(entity).model_fields:
            setattr(managed, field, getattr(entity, field))
        self._attached[key] = (managed, managed.model_dump())
        return managed

    def is_attached(self, entity: BaseModel) -> bool:
        attached = self._attached.get((type(entity), getattr(entity, "id", None)))
        return attached is not None and attached[0] is entity

    def evict_all(self, model: type[BaseModel]) -> None:
        """Detach every instance of model, e.g. after a bulk update made them stale."""
        for key in [key for key in self._attached if key[0] is model]:
            del self._attached[key]

    def flush(self) -> int:
        """
        Write every attached entity whose state differs from its snapshot.

        Returns:
            Number of entities written
        """
        self._require_active()
        written = 0
        for key, (entity, snapshot) in list(self._attached.items()):
            if entity.model_dump() != snapshot:
                self._writer.write(self.conn, entity)
                self._attached[key] = (entity, entity.model_dump())
                written += 1
        if written:
            logger.debug(f"Flushed {written} entities")
        return written

    def close(self) -> None:
        self._attached.clear()
        self._active = False

    def _require_active(self) -> None:
        if not self.active:
            raise IllegalStateError("Session is closed")


def current_session(pool=None) -> Session | None:
    """
    Return the active session of the current context, if any.

    Args:
        pool: When given, only a session borrowed from this pool counts
    """
    session = _current.get()
    if session is None or not session.active:
        return None
    if pool is not None and session.pool is not pool:
        return None
    return session


def require_session(pool=None, operation: str = "operation") -> Session:
    """
    Return the active session or fail fast.

    Raises:
        IllegalStateError: If there is no active session
    """
    session = current_session(pool)
    if session is None:
        raise IllegalStateError(f"{operation} requires an active session")
    return session


def bind(session: Session):
    """Make session the current one; returns the token for unbind()."""
    return _current.set(session)


def unbind(token) -> None:
    _current.reset(token)
