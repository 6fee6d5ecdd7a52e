"""
Embedded fallback dataset used when the remote directory is unreachable.
"""

import logging
from typing import List

from user_sync.models import ExternalUserRecord

logger = logging.getLogger(__name__)

# Fallback ids live in a reserved range so they never match a real remote id.
FALLBACK_ID_OFFSET = 900000

_FALLBACK_USERS = [
    (1, 'george.bluth@reqres.in', 'George', 'Bluth'),
    (2, 'janet.weaver@reqres.in', 'Janet', 'Weaver'),
    (3, 'emma.wong@reqres.in', 'Emma', 'Wong'),
    (4, 'eve.holt@reqres.in', 'Eve', 'Holt'),
    (5, 'charles.morris@reqres.in', 'Charles', 'Morris'),
    (6, 'tracey.ramos@reqres.in', 'Tracey', 'Ramos'),
    (7, 'michael.lawson@reqres.in', 'Michael', 'Lawson'),
    (8, 'lindsay.ferguson@reqres.in', 'Lindsay', 'Ferguson'),
    (9, 'tobias.funke@reqres.in', 'Tobias', 'Funke'),
    (10, 'byron.fields@reqres.in', 'Byron', 'Fields'),
    (11, 'george.edwards@reqres.in', 'George', 'Edwards'),
    (12, 'rachel.howell@reqres.in', 'Rachel', 'Howell'),
]


class FallbackDatasetProvider:
    """Supplies the fixed substitute user list."""

    def __init__(self, id_offset: int = FALLBACK_ID_OFFSET):
        self.id_offset = id_offset

    def load(self) -> List[ExternalUserRecord]:
        """Return a fresh list of the fallback records. Never fails."""
        records = [
            ExternalUserRecord(
                external_id=self.id_offset + index,
                email=email,
                first_name=first_name,
                last_name=last_name,
                avatar_url=f'https://reqres.in/img/faces/{index}-image.jpg',
            )
            for index, email, first_name, last_name in _FALLBACK_USERS
        ]
        logger.info(f"Loaded {len(records)} fallback users")
        return records

    def __len__(self):
        return len(_FALLBACK_USERS)
