import json
import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root (pyproject.toml).
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest


@pytest.fixture
def write_report_definition(tmp_path):
    """Write a report definition file; dicts become JSON, strings are written as-is."""

    def _write(raw, name: str = "report.json"):
        path = tmp_path / name
        path.write_text(json.dumps(raw) if isinstance(raw, dict) else raw)
        return path

    return _write
