"""
In-memory collaborators shared by the sync tests.
"""

import os
import sys
import threading
from datetime import datetime
from typing import Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_sync.directory.base import DirectoryClientBase, RemoteUnavailable
from user_sync.models import DirectoryPage, ExternalUserRecord, LocalUserRecord, NewLocalUser
from user_sync.repository import DuplicateKeyError, StorageError, UserRepository


def make_record(external_id: int) -> ExternalUserRecord:
    return ExternalUserRecord(
        external_id=external_id,
        email=f'user{external_id}@example.com',
        first_name=f'First{external_id}',
        last_name=f'Last{external_id}',
        avatar_url=f'https://example.com/avatars/{external_id}.jpg',
    )


class PlainHasher:
    """Stand-in for CredentialHasher that records every call."""

    def __init__(self):
        self.calls = []

    def hash(self, plaintext: str) -> str:
        self.calls.append(plaintext)
        return f'hashed:{plaintext}'


class InMemoryUserRepository(UserRepository):
    """UserRepository keeping rows in a dict, with unique email and external id."""

    def __init__(self, fail_on_external_ids=()):
        self.rows: Dict[int, LocalUserRecord] = {}
        self.fail_on_external_ids = set(fail_on_external_ids)
        self._next_id = 1
        self._lock = threading.Lock()

    def seed(self, record: ExternalUserRecord) -> LocalUserRecord:
        return self.insert(NewLocalUser.from_external(record, 'seeded'))

    def exists_by_external_id(self, external_id: int) -> bool:
        return any(row.external_id == external_id for row in self.rows.values())

    def insert(self, user: NewLocalUser) -> LocalUserRecord:
        with self._lock:
            if user.external_id in self.fail_on_external_ids:
                raise StorageError(f"Simulated storage failure for {user.external_id}")
            for row in self.rows.values():
                if row.email == user.email or (
                        user.external_id is not None and row.external_id == user.external_id):
                    raise DuplicateKeyError(f"Duplicate user {user.email}")

            now = datetime.now()
            record = LocalUserRecord(
                id=self._next_id,
                email=user.email,
                password_hash=user.password_hash,
                first_name=user.first_name,
                last_name=user.last_name,
                avatar_url=user.avatar_url,
                is_external=user.is_external,
                external_id=user.external_id,
                created_at=now,
                updated_at=now,
            )
            self.rows[record.id] = record
            self._next_id += 1
            return record

    def external_ids(self) -> List[Optional[int]]:
        return [row.external_id for row in self.rows.values()]


class FakeDirectoryClient(DirectoryClientBase):
    """
    Directory client serving predefined pages.

    pages maps page number to a list of records; failing_pages raise
    RemoteUnavailable; waits maps page number to an Event the fetch waits on.
    """

    def __init__(self, pages: Dict[int, List[ExternalUserRecord]], failing_pages=(),
                 waits: Optional[Dict[int, threading.Event]] = None, per_page: Optional[int] = None,
                 total: Optional[int] = None, total_pages: Optional[int] = None):
        super().__init__({'module': 'fake', 'base_url': 'http://directory.test/api'})
        self.pages = pages
        self.failing_pages = set(failing_pages)
        self.waits = waits or {}
        self.per_page = per_page
        self.total = total
        self.total_pages = total_pages or max(set(pages) | self.failing_pages)
        self.completed: List[int] = []
        self.requested: List[int] = []
        self._lock = threading.Lock()

    def fetch_page(self, page_number: int) -> DirectoryPage:
        with self._lock:
            self.requested.append(page_number)

        event = self.waits.get(page_number)
        if event is not None:
            event.wait(timeout=5)

        if page_number in self.failing_pages:
            raise RemoteUnavailable(f"Simulated outage on page {page_number}", page=page_number)

        page = DirectoryPage(
            page=page_number,
            records=list(self.pages.get(page_number, [])),
            total_pages=self.total_pages,
            per_page=self.per_page,
            total=self.total,
        )
        with self._lock:
            self.completed.append(page_number)
        return page
