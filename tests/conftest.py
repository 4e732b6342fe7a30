import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import obsdash` works when tests run from any CWD/import mode.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)
if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path, monkeypatch):
    """Keep tests away from the real token and settings file."""
    monkeypatch.delenv("OBSDASH_AUTH_TOKEN", raising=False)
    monkeypatch.setenv("OBSDASH_SETTINGS", str(tmp_path / "settings.yaml"))
    yield
