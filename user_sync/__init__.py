"""
External User Sync - Import users from a paginated third-party directory into the local user table.

This package provides the sync job that fetches remote directory pages, deduplicates
them against local records by external id, and falls back to an embedded dataset
when the remote directory cannot be reached.
"""

__version__ = "1.0.0"
__author__ = "User Sync Team"
