from __future__ import annotations

from pathlib import Path

import pytest

from typehole.app import create_app
from typehole.workspace import Workspace

SOURCE = '''import os


def load():
    return {"x": 1}


result = load()
'''


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "app.py"
    path.write_text(SOURCE, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)


@pytest.fixture
def app(tmp_path: Path):
    app = create_app(workspace_dir=tmp_path, start_worker=False, watch=False)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
