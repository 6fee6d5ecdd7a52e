"""
Application runner for External User Sync.

This module wires configuration, logging, the remote directory client and the user
repository into a SyncOrchestrator, and exposes the sync endpoint, a health check
and the command line entry point.
"""

import sys
import json
import logging
import importlib
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy import text

from user_sync.config import load_config, ConfigurationError
from user_sync.db import create_db_engine, create_session_factory, create_schema
from user_sync.directory.base import DirectoryClientBase
from user_sync.fallback import FallbackDatasetProvider
from user_sync.importer import DeduplicatingImporter
from user_sync.logging_setup import setup_logging
from user_sync.models import SyncOutcome
from user_sync.repository import SqlAlchemyUserRepository
from user_sync.security import CredentialHasher
from user_sync.sync import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when the sync job cannot be assembled."""
    pass


class SyncRunner:
    """
    Builds the sync job from configuration and runs it.

    The engine, repository and directory client are created per runner and passed
    into the orchestrator explicitly.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """
        Initialize sync runner.

        Args:
            config_path: Path to configuration file
            config: Already loaded configuration; skips file loading when given
        """
        self.config_path = config_path
        self.config = config
        self.engine = None
        self.last_outcome = None
        self.runtime_seconds = 0.0

    def run(self, start_page: Optional[int] = None) -> int:
        """
        Run the sync and log a summary.

        Returns:
            Exit code (0 for success, 2 for configuration errors, 4 for unexpected failures)
        """
        try:
            self.execute(start_page)
            logger.info("Sync completed successfully")
            return 0
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 4
        finally:
            self.close()

    def execute(self, start_page: Optional[int] = None) -> SyncOutcome:
        """
        Run one sync and return its outcome.

        Raises:
            ConfigurationError: If configuration cannot be loaded
            SyncError: If the directory module cannot be loaded
        """
        self._load_configuration()
        setup_logging(self.config.get('logging', {}))

        logger.info("Starting external user sync")
        start_time = datetime.now()

        orchestrator = self.build_orchestrator()
        outcome = orchestrator.run(start_page)

        self.runtime_seconds = (datetime.now() - start_time).total_seconds()
        self.last_outcome = outcome
        self._log_sync_summary(outcome)
        return outcome

    def _load_configuration(self):
        if self.config is not None:
            return
        try:
            self.config = load_config(self.config_path)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def build_orchestrator(self) -> SyncOrchestrator:
        """Create the orchestrator and its collaborators from configuration."""
        import_config = self.config['import']
        sync_config = self.config['sync']

        client = self._load_directory_module(self.config['directory'])
        repository = SqlAlchemyUserRepository(create_session_factory(self._get_engine()))
        hasher = CredentialHasher(
            scheme=import_config['hash_scheme'],
            rounds=import_config.get('hash_rounds'),
        )
        importer = DeduplicatingImporter(repository, hasher, import_config['placeholder_password'])

        return SyncOrchestrator(
            client,
            importer,
            FallbackDatasetProvider(),
            max_concurrency=sync_config['max_concurrency'],
            page_failure_policy=sync_config['page_failure_policy'],
        )

    def _get_engine(self):
        if self.engine is None:
            self.engine = create_db_engine(self.config['database']['url'])
            create_schema(self.engine)
        return self.engine

    def _load_directory_module(self, directory_config: Dict[str, Any]) -> DirectoryClientBase:
        """Dynamically load the directory module and create its client."""
        module_name = directory_config['module']

        try:
            directory_module = importlib.import_module(f"user_sync.directory.{module_name}")
        except ImportError as e:
            raise SyncError(f"Failed to import directory module {module_name}: {e}")

        client_class = None
        for attr_name in dir(directory_module):
            attr = getattr(directory_module, attr_name)
            if (isinstance(attr, type) and
                    issubclass(attr, DirectoryClientBase) and
                    attr is not DirectoryClientBase):
                client_class = attr
                break

        if not client_class:
            raise SyncError(f"No DirectoryClientBase subclass found in module {module_name}")

        try:
            return client_class(directory_config)
        except Exception as e:
            raise SyncError(f"Failed to initialize directory client {module_name}: {e}")

    def _log_sync_summary(self, outcome: SyncOutcome):
        source = "fallback dataset" if outcome.used_fallback else "external directory"
        logger.info("=== Sync Summary ===")
        logger.info(f"Source: {source}")
        logger.info(f"Runtime: {self.runtime_seconds:.2f} seconds")
        logger.info(f"Imported: {outcome.imported}")
        logger.info(f"Skipped: {outcome.skipped}")
        logger.info(f"Errors: {outcome.errors}")
        logger.info(f"Total: {outcome.total}")
        if outcome.unfetched_pages:
            logger.info(f"Unfetched pages: {', '.join(map(str, outcome.unfetched_pages))}")

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration, directory module and database connectivity.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except Exception as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        try:
            self._load_directory_module(self.config['directory'])
            health_status['checks']['directory'] = {
                'status': 'pass',
                'message': 'Directory module loaded successfully'
            }
        except Exception as e:
            health_status['checks']['directory'] = {
                'status': 'fail',
                'message': f'Directory module loading failed: {e}'
            }
            health_status['status'] = 'unhealthy'

        try:
            with self._get_engine().connect() as connection:
                connection.execute(text('SELECT 1'))
            health_status['checks']['database'] = {
                'status': 'pass',
                'message': 'Database connection successful'
            }
        except Exception as e:
            health_status['checks']['database'] = {
                'status': 'fail',
                'message': f'Database connection failed: {e}'
            }
            health_status['status'] = 'unhealthy'

        return health_status

    def close(self):
        """Release the database engine."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None


def build_response(outcome: SyncOutcome) -> Dict[str, Any]:
    """Serialize an outcome into the sync endpoint response body."""
    if outcome.used_fallback:
        message = (f"Successfully imported {outcome.imported} users from fallback data "
                   f"(external API unavailable)")
    else:
        message = f"Successfully imported {outcome.imported} users from external API"

    return {
        'success': True,
        'message': message,
        'data': outcome.to_dict(),
    }


def sync_endpoint(runner: SyncRunner, page: Optional[int] = None) -> Dict[str, Any]:
    """
    Handle a sync request.

    Args:
        runner: Runner bound to the application's configuration
        page: Optional starting page from the request; page 1 is always used for discovery

    Returns:
        Response body with the serialized SyncOutcome
    """
    outcome = runner.execute(page)
    return build_response(outcome)


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='External User Sync')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--page', type=int, default=None,
                        help='Starting page (page 1 is always used to discover the page count)')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of sync')
    parser.add_argument('--json', action='store_true',
                        help='Print the sync response as JSON')

    args = parser.parse_args()

    runner = SyncRunner(config_path=args.config)

    if args.health_check:
        try:
            health_status = runner.health_check()
        finally:
            runner.close()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    exit_code = runner.run(args.page)
    if args.json and runner.last_outcome is not None:
        print(json.dumps(build_response(runner.last_outcome), indent=2))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
