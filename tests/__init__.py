"""Tests for the departement load-test tooling.

Unit tests mock the HTTP layer with respx; nothing here needs a running
departement service.
"""
