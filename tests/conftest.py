# tests/conftest.py
"""
Pytest configuration and fixtures.
Adds src/ to sys.path so `import papershelf` works without installing.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
src_root = project_root / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from papershelf.config.settings import Settings  # noqa: E402
from papershelf.infrastructure.repository import PaperRepository  # noqa: E402
from papershelf.infrastructure.stores.migrations import migrate  # noqa: E402
from papershelf.infrastructure.stores.paper_store import PaperStore  # noqa: E402
from papershelf.utils.logging_config import Logger, clear_trace_id  # noqa: E402

_ENV_VARS = (
    "PAPERSHELF_ROOT",
    "PAPERSHELF_DB_URL",
    "PAPERSHELF_CONFIG",
    "PAPERSHELF_DEFAULT_TAGS",
    "PAPERSHELF_HTTP_TIMEOUT",
    "PAPERSHELF_USER_AGENT",
    "PAPERSHELF_LOG_LEVEL",
    "PAPERSHELF_LOG_DIR",
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    Logger.init(base_dir=str(tmp_path / "logs"), level="DEBUG", force=True)
    yield
    Logger.close()
    clear_trace_id()


@pytest.fixture
def db_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'papers.db'}"
    migrate(url)
    return url


@pytest.fixture
def store(db_url):
    paper_store = PaperStore(db_url)
    yield paper_store
    paper_store.close()


@pytest.fixture
def repo_root(tmp_path) -> Path:
    root = tmp_path / "shelf"
    root.mkdir()
    return root


@pytest.fixture
def repository(repo_root):
    repo = PaperRepository.init(Settings(root=repo_root))
    yield repo
    repo.close()
