"""
Deduplicating importer.

Turns a batch of external records into local users. Each record is handled on its
own: an existing external id is skipped, a repository or hashing failure is
recorded and the batch moves on to the next record.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from user_sync.models import ExternalUserRecord, NewLocalUser
from user_sync.repository import RepositoryError, UserRepository
from user_sync.security import CredentialHashError, CredentialHasher

logger = logging.getLogger(__name__)


class RecordStatus(enum.Enum):
    IMPORTED = 'imported'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass(frozen=True)
class RecordResult:
    record: ExternalUserRecord
    status: RecordStatus
    error: Optional[Exception] = None


@dataclass(frozen=True)
class ImportTally:
    imported: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.errors

    def add(self, result: RecordResult) -> 'ImportTally':
        if result.status is RecordStatus.IMPORTED:
            return ImportTally(self.imported + 1, self.skipped, self.errors)
        if result.status is RecordStatus.SKIPPED:
            return ImportTally(self.imported, self.skipped + 1, self.errors)
        return ImportTally(self.imported, self.skipped, self.errors + 1)


class DeduplicatingImporter:
    """
    Inserts external users that are not yet linked to a local record.

    Imported accounts get the configured placeholder credential, hashed once
    per inserted record.
    """

    def __init__(self, repository: UserRepository, hasher: CredentialHasher,
                 placeholder_password: str):
        """
        Initialize importer.

        Args:
            repository: User store to check and insert into
            hasher: Credential hasher for the placeholder password
            placeholder_password: Plaintext credential given to every imported account
        """
        if not placeholder_password:
            raise ValueError("placeholder_password must not be empty")
        self.repository = repository
        self.hasher = hasher
        self.placeholder_password = placeholder_password

    def import_record(self, record: ExternalUserRecord) -> RecordResult:
        """
        Import a single record.

        Repository and hashing errors are turned into a FAILED result; anything else
        propagates.
        """
        try:
            if self.repository.exists_by_external_id(record.external_id):
                logger.debug(f"External user {record.external_id} already present, skipping")
                return RecordResult(record, RecordStatus.SKIPPED)

            password_hash = self.hasher.hash(self.placeholder_password)
            self.repository.insert(NewLocalUser.from_external(record, password_hash))
        except (RepositoryError, CredentialHashError) as e:
            logger.error(f"Error importing user {record.external_id}: {e}")
            return RecordResult(record, RecordStatus.FAILED, e)

        logger.info(f"Imported external user {record.external_id} ({record.email})")
        return RecordResult(record, RecordStatus.IMPORTED)

    def import_records(self, records: Iterable[ExternalUserRecord]) -> Iterator[RecordResult]:
        """Yield one result per record, in input order."""
        for record in records:
            yield self.import_record(record)

    def import_batch(self, records: Iterable[ExternalUserRecord]) -> ImportTally:
        tally = ImportTally()
        for result in self.import_records(records):
            tally = tally.add(result)
        logger.info(f"Import batch finished: {tally.imported} imported, "
                    f"{tally.skipped} skipped, {tally.errors} errors")
        return tally
