"""Root conftest: load test environment variables and route structlog through stdlib logging."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# caplog only sees events that reach stdlib logging.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
