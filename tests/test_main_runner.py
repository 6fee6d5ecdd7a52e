#!/usr/bin/env python3
"""
Tests for the application runner, the sync endpoint and the CLI.

The runner is driven with an in-memory SQLite database and a fake directory
client so the whole job runs end to end without network access.
"""

import os
import sys
import json
import unittest
from io import StringIO
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FakeDirectoryClient, make_record
from user_sync.config import ConfigurationError
from user_sync.directory.reqres import ReqresDirectoryClient
from user_sync.main import SyncRunner, SyncError, build_response, main, sync_endpoint
from user_sync.models import SyncOutcome


def make_config(**overrides):
    config = {
        'directory': {
            'module': 'reqres',
            'base_url': 'https://reqres.in/api',
            'timeout_seconds': 10,
        },
        'sync': {'max_concurrency': 5, 'page_failure_policy': 'fallback'},
        'import': {
            'placeholder_password': 'password123',
            'hash_scheme': 'pbkdf2_sha256',
            'hash_rounds': 1000,
        },
        'database': {'url': 'sqlite://'},
        'logging': {'level': 'INFO'},
    }
    config.update(overrides)
    return config


@patch('user_sync.main.setup_logging')
class TestSyncRunner(unittest.TestCase):
    """Test cases for SyncRunner."""

    def setUp(self):
        self.runner = SyncRunner(config=make_config())
        self.addCleanup(self.runner.close)

    def test_execute_imports_remote_users(self, mock_setup_logging):
        client = FakeDirectoryClient({
            1: [make_record(1), make_record(2)],
            2: [make_record(3), make_record(4)],
        })
        with patch.object(self.runner, '_load_directory_module', return_value=client):
            outcome = self.runner.execute()

        self.assertEqual(outcome.to_dict(), {
            'imported': 4, 'skipped': 0, 'errors': 0, 'total': 4, 'usedFallback': False
        })
        mock_setup_logging.assert_called_once_with({'level': 'INFO'})

    def test_repeated_runs_share_database(self, mock_setup_logging):
        client = FakeDirectoryClient({1: [make_record(1), make_record(2)]})
        with patch.object(self.runner, '_load_directory_module', return_value=client):
            first = self.runner.execute()
            second = self.runner.execute()

        self.assertEqual(first.imported, 2)
        self.assertEqual((second.imported, second.skipped), (0, 2))

    def test_endpoint_reports_fallback(self, mock_setup_logging):
        client = FakeDirectoryClient({}, failing_pages=[1])
        with patch.object(self.runner, '_load_directory_module', return_value=client):
            response = sync_endpoint(self.runner, page=1)

        self.assertTrue(response['success'])
        self.assertEqual(response['message'],
                         'Successfully imported 12 users from fallback data (external API unavailable)')
        self.assertEqual(response['data']['usedFallback'], True)
        self.assertEqual(response['data']['total'], 12)

    def test_run_returns_zero_on_success(self, mock_setup_logging):
        client = FakeDirectoryClient({1: [make_record(1)]})
        with patch.object(self.runner, '_load_directory_module', return_value=client):
            exit_code = self.runner.run()

        self.assertEqual(exit_code, 0)
        self.assertEqual(self.runner.last_outcome.imported, 1)
        self.assertIsNone(self.runner.engine)

    def test_run_returns_two_on_configuration_error(self, mock_setup_logging):
        runner = SyncRunner()
        with patch('user_sync.main.load_config', side_effect=ConfigurationError("bad")):
            self.assertEqual(runner.run(), 2)

    def test_run_wraps_unexpected_config_failures(self, mock_setup_logging):
        runner = SyncRunner()
        with patch('user_sync.main.load_config', side_effect=OSError("permission denied")):
            self.assertEqual(runner.run(), 2)

    def test_run_returns_four_on_unexpected_error(self, mock_setup_logging):
        with patch.object(self.runner, '_load_directory_module', side_effect=SyncError("no module")):
            self.assertEqual(self.runner.run(), 4)

    def test_load_directory_module(self, mock_setup_logging):
        client = self.runner._load_directory_module(make_config()['directory'])

        self.assertIsInstance(client, ReqresDirectoryClient)
        self.assertEqual(client.timeout, 10)

    def test_load_unknown_directory_module(self, mock_setup_logging):
        with self.assertRaises(SyncError):
            self.runner._load_directory_module({'module': 'does_not_exist', 'base_url': 'https://x'})

    def test_module_without_client_class(self, mock_setup_logging):
        with self.assertRaises(SyncError):
            self.runner._load_directory_module({'module': 'base', 'base_url': 'https://x'})

    def test_health_check(self, mock_setup_logging):
        status = self.runner.health_check()

        self.assertEqual(status['status'], 'healthy')
        self.assertEqual(status['checks']['configuration']['status'], 'pass')
        self.assertEqual(status['checks']['directory']['status'], 'pass')
        self.assertEqual(status['checks']['database']['status'], 'pass')

    def test_health_check_reports_bad_module(self, mock_setup_logging):
        config = make_config()
        config['directory']['module'] = 'missing'
        runner = SyncRunner(config=config)
        self.addCleanup(runner.close)

        status = runner.health_check()

        self.assertEqual(status['status'], 'unhealthy')
        self.assertEqual(status['checks']['directory']['status'], 'fail')


class TestBuildResponse(unittest.TestCase):

    def test_remote_message(self):
        response = build_response(SyncOutcome(imported=6, total=6))

        self.assertEqual(response['message'], 'Successfully imported 6 users from external API')
        self.assertEqual(response['data'], {
            'imported': 6, 'skipped': 0, 'errors': 0, 'total': 6, 'usedFallback': False
        })


class TestMainEntryPoint(unittest.TestCase):

    @patch('user_sync.main.SyncRunner')
    def test_main_runs_sync_and_prints_json(self, mock_runner_class):
        runner = mock_runner_class.return_value
        runner.run.return_value = 0
        runner.last_outcome = SyncOutcome(imported=1, total=1)

        with patch.object(sys, 'argv', ['user-sync', '--config', 'c.yaml', '--page', '2', '--json']), \
                patch('sys.stdout', new_callable=StringIO) as stdout:
            with self.assertRaises(SystemExit) as ctx:
                main()

        self.assertEqual(ctx.exception.code, 0)
        mock_runner_class.assert_called_once_with(config_path='c.yaml')
        runner.run.assert_called_once_with(2)
        self.assertEqual(json.loads(stdout.getvalue())['data']['imported'], 1)

    @patch('user_sync.main.SyncRunner')
    def test_main_health_check_exit_code(self, mock_runner_class):
        mock_runner_class.return_value.health_check.return_value = {'status': 'unhealthy', 'checks': {}}

        with patch.object(sys, 'argv', ['user-sync', '--health-check']), \
                patch('sys.stdout', new_callable=StringIO):
            with self.assertRaises(SystemExit) as ctx:
                main()

        self.assertEqual(ctx.exception.code, 1)
        mock_runner_class.return_value.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
