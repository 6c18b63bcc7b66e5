from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_aria_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for key in list(os.environ):
        if key.startswith("ARIA_"):
            monkeypatch.delenv(key)
    # Settings also read a .env from the working directory.
    monkeypatch.chdir(tmp_path)
