"""
Sync orchestrator.

Drives one import run: discover the page count from page 1, fetch the remaining
pages concurrently, hand the ordered candidate list to the importer and report a
SyncOutcome. When the remote directory cannot be read the embedded fallback
dataset is imported instead.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

from user_sync.config import PAGE_FAILURE_POLICIES
from user_sync.directory.base import DirectoryClientBase, RemoteUnavailable
from user_sync.fallback import FallbackDatasetProvider
from user_sync.importer import DeduplicatingImporter
from user_sync.models import DirectoryPage, ExternalUserRecord, SyncOutcome

logger = logging.getLogger(__name__)

DISCOVERY_PAGE = 1


class SyncOrchestrator:
    """
    Runs the external user import.

    Page failure policies:
        fallback: any page failure discards every fetched page and imports the
            fallback dataset instead.
        partial: a failure on page 2 or later keeps the pages that were fetched
            and counts the records of each missing page as errors. Only a
            page 1 failure triggers the fallback dataset.
    """

    def __init__(self, client: DirectoryClientBase, importer: DeduplicatingImporter,
                 fallback: Optional[FallbackDatasetProvider] = None,
                 max_concurrency: int = 5, page_failure_policy: str = 'fallback'):
        """
        Initialize sync orchestrator.

        Args:
            client: Remote directory client
            importer: Importer bound to the local user repository
            fallback: Provider of the substitute dataset
            max_concurrency: Maximum number of page requests in flight
            page_failure_policy: 'fallback' or 'partial'
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        if page_failure_policy not in PAGE_FAILURE_POLICIES:
            raise ValueError(f"Unknown page failure policy: {page_failure_policy!r}")

        self.client = client
        self.importer = importer
        self.fallback = fallback or FallbackDatasetProvider()
        self.max_concurrency = max_concurrency
        self.page_failure_policy = page_failure_policy

    def run(self, start_page: Optional[int] = None) -> SyncOutcome:
        """
        Run one sync.

        Args:
            start_page: Accepted for compatibility with callers; page 1 is always
                the discovery page

        Returns:
            SyncOutcome for this run. Remote failures never propagate; a failure
            while importing the fallback dataset does.
        """
        if start_page not in (None, DISCOVERY_PAGE):
            logger.info(f"Requested start page {start_page} ignored, discovering from page {DISCOVERY_PAGE}")

        try:
            first_page = self.client.fetch_page(DISCOVERY_PAGE)
        except Exception as e:
            self._log_fetch_failure(DISCOVERY_PAGE, e)
            return self._run_fallback()

        logger.info(f"Remote directory reports {first_page.total_pages} page(s)")

        try:
            pages, failed_pages = self._fetch_remaining(first_page)
        except Exception as e:
            logger.error(f"Unexpected error while fetching directory pages: {e}", exc_info=True)
            return self._run_fallback()

        if failed_pages and self.page_failure_policy == 'fallback':
            logger.warning(f"Discarding {len(pages)} fetched page(s) after failure on "
                           f"page(s) {', '.join(map(str, failed_pages))}")
            return self._run_fallback()

        candidates = self._assemble(pages)
        missing = self._estimate_missing_records(first_page, failed_pages)
        if failed_pages:
            logger.warning(f"Importing {len(pages)} fetched page(s); {missing} record(s) on "
                           f"page(s) {', '.join(map(str, failed_pages))} counted as errors")

        tally = self.importer.import_batch(candidates)
        return SyncOutcome(
            imported=tally.imported,
            skipped=tally.skipped,
            errors=tally.errors + missing,
            total=len(candidates) + missing,
            used_fallback=False,
            unfetched_pages=failed_pages,
        )

    def _fetch_remaining(self, first_page: DirectoryPage) -> Tuple[Dict[int, DirectoryPage], List[int]]:
        """
        Fetch pages 2..total_pages with bounded concurrency.

        Returns:
            Tuple of (pages keyed by page number, sorted list of failed page numbers)
        """
        pages = {first_page.page: first_page}
        remaining = list(range(DISCOVERY_PAGE + 1, first_page.total_pages + 1))
        if not remaining:
            return pages, []

        failed = []
        workers = min(self.max_concurrency, len(remaining))
        logger.debug(f"Fetching {len(remaining)} page(s) with {workers} worker(s)")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='directory-fetch') as executor:
            futures = {executor.submit(self.client.fetch_page, page): page for page in remaining}
            for future in as_completed(futures):
                page_number = futures[future]
                try:
                    pages[page_number] = future.result()
                except Exception as e:
                    self._log_fetch_failure(page_number, e)
                    failed.append(page_number)
                    if self.page_failure_policy == 'fallback':
                        # Result is discarded anyway
                        for pending in futures:
                            pending.cancel()
                        break

        return pages, sorted(failed)

    def _assemble(self, pages: Dict[int, DirectoryPage]) -> List[ExternalUserRecord]:
        """Concatenate page records by page number, not by arrival order."""
        candidates = []
        for page_number in sorted(pages):
            candidates.extend(pages[page_number].records)
        return candidates

    def _estimate_missing_records(self, first_page: DirectoryPage, failed_pages: List[int]) -> int:
        """Number of records the failed pages would have held."""
        if not failed_pages:
            return 0

        per_page = first_page.per_page or len(first_page.records)
        missing = 0
        for page_number in failed_pages:
            if page_number == first_page.total_pages and first_page.total is not None:
                missing += max(first_page.total - per_page * (first_page.total_pages - 1), 0)
            else:
                missing += per_page
        return missing

    def _run_fallback(self) -> SyncOutcome:
        logger.warning("External directory unavailable, importing fallback dataset")
        candidates = self.fallback.load()
        tally = self.importer.import_batch(candidates)
        return SyncOutcome(
            imported=tally.imported,
            skipped=tally.skipped,
            errors=tally.errors,
            total=len(candidates),
            used_fallback=True,
        )

    def _log_fetch_failure(self, page_number: int, error: Exception):
        if isinstance(error, RemoteUnavailable):
            logger.error(f"Failed to fetch directory page {page_number}: {error}")
        else:
            logger.error(f"Unexpected error fetching directory page {page_number}: {error}", exc_info=True)
