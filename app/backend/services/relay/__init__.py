"""Backup relay services.

This package provides:
- An SFTP source lister/fetcher and latest-artifact selection
- Integrity verification of staged artifacts
- A WebDAV destination with a namespace-tolerant multi-status parser
- Retention selection
- Orchestration of one fetch-verify-publish-retain run
- Outcome notifications
"""
