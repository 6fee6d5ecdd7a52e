"""
Remote directory integrations.

Each module in this package provides a DirectoryClientBase subclass; the module
used by a run is selected by the 'directory.module' configuration setting.
"""

from .base import DirectoryClientBase, RemoteUnavailable

__all__ = ['DirectoryClientBase', 'RemoteUnavailable']
