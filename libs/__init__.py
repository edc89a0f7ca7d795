"""Shared libraries for the load-test tooling.

Subpackages:
- ``libs.common``: configuration, logging and metrics.

Notes:
- Keep scenario-specific logic in ``performance``; modules here stay generic.
"""
