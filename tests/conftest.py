"""Shared fixtures for the load-test suite."""

import pytest

from libs.common.config import load_config

BASE_URL = "http://departement.test/kaddem/departement"
CREATE_URL = f"{BASE_URL}/add-departement"
LIST_URL = f"{BASE_URL}/retrieve-all-departements"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer ``LT_*`` variables out of the tests."""
    import os

    for key in list(os.environ):
        if key.upper().startswith("LT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_config():
    """Factory for short, preflight-free configurations against ``BASE_URL``."""

    def factory(**overrides):
        values = {
            "lt_base_url": BASE_URL,
            "lt_vus": 1,
            "lt_duration": "1s",
            "lt_sleep_seconds": 0.05,
            "lt_graceful_stop_seconds": 1.0,
            "lt_request_timeout_seconds": 5.0,
            "lt_preflight": False,
        }
        values.update(overrides)
        return load_config(**values)

    return factory
