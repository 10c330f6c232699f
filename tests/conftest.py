import sys
from pathlib import Path

import pytest

# Allow `import livemarks` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Tests must never pick up a real datastore from the environment."""
    for name in (
        "LIVEMARKS_STORE_URL",
        "LIVEMARKS_API_KEY",
        "LIVEMARKS_ACCESS_TOKEN",
        "LIVEMARKS_USER_ID",
        "LIVEMARKS_POLL_INTERVAL_S",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
