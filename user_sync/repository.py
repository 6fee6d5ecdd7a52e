"""
User repository interface and its SQLAlchemy implementation.

The sync job only needs two operations from the user store: an existence check
by external id and an insert. Each call runs in its own short transaction.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from user_sync.db import UserRow
from user_sync.models import LocalUserRecord, NewLocalUser

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base exception for user repository failures."""
    pass


class DuplicateKeyError(RepositoryError):
    """Raised when an insert violates a uniqueness or other integrity constraint."""
    pass


class StorageError(RepositoryError):
    """Raised when the underlying store fails."""
    pass


class UserRepository(ABC):
    """Storage operations consumed by the importer."""

    @abstractmethod
    def exists_by_external_id(self, external_id: int) -> bool:
        """
        Check whether a local user is linked to the given external id.

        Raises:
            StorageError: If the store cannot be queried
        """
        pass

    @abstractmethod
    def insert(self, user: NewLocalUser) -> LocalUserRecord:
        """
        Insert a new local user.

        Returns:
            The stored record with its primary key and timestamps

        Raises:
            DuplicateKeyError: If the email or external id already exists
            StorageError: If the store fails
        """
        pass


class SqlAlchemyUserRepository(UserRepository):
    """UserRepository backed by the users table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def exists_by_external_id(self, external_id: int) -> bool:
        try:
            with self._session_factory() as session:
                found = session.scalar(
                    select(UserRow.id).where(UserRow.external_id == external_id).limit(1)
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Lookup of external id {external_id} failed: {e}") from e
        return found is not None

    def get_by_external_id(self, external_id: int) -> Optional[LocalUserRecord]:
        try:
            with self._session_factory() as session:
                row = session.scalar(select(UserRow).where(UserRow.external_id == external_id))
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Lookup of external id {external_id} failed: {e}") from e

    def count(self) -> int:
        try:
            with self._session_factory() as session:
                return session.scalar(select(func.count()).select_from(UserRow)) or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Counting users failed: {e}") from e

    def insert(self, user: NewLocalUser) -> LocalUserRecord:
        row = UserRow(
            email=user.email,
            password=user.password_hash,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar=user.avatar_url,
            is_external=user.is_external,
            external_id=user.external_id,
        )
        try:
            with self._session_factory() as session:
                with session.begin():
                    session.add(row)
                session.refresh(row)
                record = _to_record(row)
        except IntegrityError as e:
            raise DuplicateKeyError(
                f"User {user.email} (external id {user.external_id}) violates a constraint: {e.orig}"
            ) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Insert of {user.email} failed: {e}") from e

        logger.debug(f"Inserted local user {record.id} for external id {record.external_id}")
        return record


def _to_record(row: UserRow) -> LocalUserRecord:
    return LocalUserRecord(
        id=row.id,
        email=row.email,
        password_hash=row.password,
        first_name=row.first_name,
        last_name=row.last_name,
        avatar_url=row.avatar,
        is_external=row.is_external,
        external_id=row.external_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
