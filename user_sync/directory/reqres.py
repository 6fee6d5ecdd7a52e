"""
Reqres directory integration module.

Implements DirectoryClientBase for reqres-style user directories, which serve
GET /users?page=N with a body of the form:

    {"page": 1, "per_page": 6, "total": 12, "total_pages": 2,
     "data": [{"id": 1, "email": "...", "first_name": "...", "last_name": "...", "avatar": "..."}]}
"""

import logging
from typing import Dict, Any, List

from user_sync.models import DirectoryPage, ExternalUserRecord
from .base import DirectoryClientBase, RemoteUnavailable

logger = logging.getLogger(__name__)


class ReqresDirectoryClient(DirectoryClientBase):
    """Reqres-style paginated user directory client."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.users_path = config.get('users_path', '/users')
        logger.info(f"Initialized reqres directory client for {self.base_url}")

    def fetch_page(self, page_number: int) -> DirectoryPage:
        data = self.get_json(self.users_path, {'page': page_number}, page=page_number)

        users = data.get('data')
        if not isinstance(users, list):
            raise RemoteUnavailable(f"Page {page_number} response has no 'data' list", page=page_number)

        total_pages = data.get('total_pages')
        if not isinstance(total_pages, int) or isinstance(total_pages, bool) or total_pages < 0:
            raise RemoteUnavailable(f"Page {page_number} response has invalid total_pages: {total_pages!r}",
                                    page=page_number)

        records = self._parse_records(users, page_number)
        logger.debug(f"Fetched page {page_number}/{total_pages} with {len(records)} users")

        return DirectoryPage(
            page=page_number,
            records=records,
            total_pages=total_pages,
            per_page=_optional_int(data.get('per_page')),
            total=_optional_int(data.get('total')),
        )

    def _parse_records(self, users: List[Any], page_number: int) -> List[ExternalUserRecord]:
        records = []
        for user in users:
            if not isinstance(user, dict):
                logger.warning(f"Skipping non-object user entry on page {page_number}: {user!r}")
                continue
            try:
                records.append(ExternalUserRecord.from_api(user))
            except ValueError as e:
                logger.warning(f"Skipping user on page {page_number}: {e}")
        return records


def _optional_int(value: Any):
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None
