"""Pytest configuration and fixtures."""

import os

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["HERMES_ENV"] = "test"
    os.environ.pop("SUPABASE_URL", None)
    os.environ.pop("AZURE_OPENAI_ENDPOINT", None)
