"""
Base remote directory client interface and common HTTP functionality.

This module defines the abstract base class that every remote directory integration
must implement, along with the shared HTTP plumbing (connection setup, SSL, request
headers, timeouts and response decoding).
"""

import json
import ssl
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Union
from urllib.parse import urlparse, urlencode
from http.client import HTTPSConnection, HTTPConnection, HTTPException

from user_sync.models import DirectoryPage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


class RemoteUnavailable(Exception):
    """Raised when the remote directory cannot be reached or returns an unusable response."""

    def __init__(self, message: str, page: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.page = page
        self.status = status


class DirectoryClientBase(ABC):
    """
    Abstract base class for remote directory integrations.

    Subclasses implement fetch_page(). Every request opens its own connection,
    so one client instance can serve concurrent page fetches.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize directory client.

        Args:
            config: Directory configuration dictionary
        """
        self.config = config
        self.name = config.get('name', config.get('module', 'directory'))
        self.base_url = config['base_url']
        self.timeout = config.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS)
        self.verify_ssl = config.get('verify_ssl', True)

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.ssl_context = None
        self._setup_ssl_context()

        self.default_headers = {
            'Accept': 'application/json',
            'User-Agent': config.get('user_agent') or 'user-sync/1.0',
        }
        api_key = config.get('api_key')
        if api_key:
            self.default_headers[config.get('api_key_header', 'x-api-key')] = api_key
            logger.debug(f"Configured API key header for {self.name}")

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.name}")
            return

        self.ssl_context = ssl.create_default_context()

        ca_file = self.config.get('ca_file')
        if ca_file:
            self.ssl_context.load_verify_locations(cafile=ca_file)
            logger.info(f"Loaded CA bundle for {self.name}: {ca_file}")

    def _open_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """
        Create a new HTTP connection honouring the configured timeout.

        The timeout applies to each socket operation (connect and every read),
        not to the request as a whole. A server that trickles bytes can keep
        a single request open for longer than timeout_seconds.
        """
        if self.parsed_url.scheme == 'https':
            return HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(self.host, timeout=self.timeout)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None,
                 page: Optional[int] = None) -> Dict[str, Any]:
        """
        Issue a GET request and decode the JSON body.

        Args:
            path: Endpoint path relative to base_url
            params: Query string parameters
            page: Page number, attached to any raised error

        Returns:
            Decoded JSON object

        Raises:
            RemoteUnavailable: On network error, timeout, non-2xx status, a body
                that is not UTF-8, or invalid JSON
        """
        full_path = f"{self.base_path}/{path.lstrip('/')}"
        if params:
            full_path = f"{full_path}?{urlencode(params)}"

        conn = self._open_connection()
        try:
            logger.debug(f"GET {self.host}{full_path}")
            conn.request('GET', full_path, headers=self.default_headers)
            response = conn.getresponse()
            raw_body = response.read()
            logger.debug(f"Response status: {response.status} {response.reason}")
        except (HTTPException, OSError) as e:
            raise RemoteUnavailable(f"Connection error to {self.name}: {e}", page=page)
        finally:
            conn.close()

        if not 200 <= response.status < 300:
            raise RemoteUnavailable(f"HTTP {response.status}: {response.reason}",
                                    page=page, status=response.status)

        try:
            body = raw_body.decode('utf-8')
        except UnicodeDecodeError as e:
            raise RemoteUnavailable(f"Response from {self.name} is not valid UTF-8: {e}",
                                    page=page, status=response.status)

        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as e:
            raise RemoteUnavailable(f"Invalid JSON response from {self.name}: {e}", page=page)

        if not isinstance(data, dict):
            raise RemoteUnavailable(f"Unexpected response body from {self.name}", page=page)
        return data

    @abstractmethod
    def fetch_page(self, page_number: int) -> DirectoryPage:
        """
        Fetch one page of external users.

        Args:
            page_number: 1-based page number

        Returns:
            DirectoryPage with the page's records and total page count

        Raises:
            RemoteUnavailable: If the page cannot be fetched
        """
        pass
