import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import scripts...` work when running this folder alone.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest

from common.report_engine.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def _detach_cli_log_handler():
    yield
    reset_logging()
