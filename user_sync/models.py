"""
Record types shared by the directory client, importer and orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional


@dataclass(frozen=True)
class ExternalUserRecord:
    """A user as published by the remote directory. Never mutated locally."""

    external_id: int
    email: str
    first_name: str
    last_name: str
    avatar_url: str = ''

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'ExternalUserRecord':
        """
        Build a record from a remote directory JSON object.

        Args:
            data: Object with 'id', 'email', 'first_name', 'last_name' and 'avatar' keys

        Raises:
            ValueError: If the object has no integer id
        """
        external_id = data.get('id')
        if not isinstance(external_id, int) or isinstance(external_id, bool):
            raise ValueError(f"Directory record has no integer id: {data!r}")

        return cls(
            external_id=external_id,
            email=str(data.get('email') or ''),
            first_name=str(data.get('first_name') or ''),
            last_name=str(data.get('last_name') or ''),
            avatar_url=str(data.get('avatar') or ''),
        )


@dataclass(frozen=True)
class NewLocalUser:
    """Insert payload for the user repository."""

    email: str
    password_hash: str
    first_name: str
    last_name: str
    avatar_url: str
    is_external: bool
    external_id: Optional[int]

    @classmethod
    def from_external(cls, record: ExternalUserRecord, password_hash: str) -> 'NewLocalUser':
        return cls(
            email=record.email,
            password_hash=password_hash,
            first_name=record.first_name,
            last_name=record.last_name,
            avatar_url=record.avatar_url,
            is_external=True,
            external_id=record.external_id,
        )


@dataclass(frozen=True)
class LocalUserRecord:
    """A row of the local user table as returned by the repository."""

    id: int
    email: str
    password_hash: str
    first_name: str
    last_name: str
    avatar_url: Optional[str]
    is_external: bool
    external_id: Optional[int]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DirectoryPage:
    """One page of the remote directory plus its pagination metadata."""

    page: int
    records: List[ExternalUserRecord]
    total_pages: int
    per_page: Optional[int] = None
    total: Optional[int] = None


@dataclass
class SyncOutcome:
    """
    Summary of one sync run.

    imported + skipped + errors always equals total.
    """

    imported: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    used_fallback: bool = False
    unfetched_pages: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the shape returned by the sync endpoint."""
        return {
            'imported': self.imported,
            'skipped': self.skipped,
            'errors': self.errors,
            'total': self.total,
            'usedFallback': self.used_fallback,
        }
