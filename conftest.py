"""Root conftest: loads .env.test before any fixitnow_chat module is imported.

``fixitnow_chat.config`` builds its settings at import time, so the test
environment has to be in ``os.environ`` first. Values already exported in
the shell win over the file.
"""
from __future__ import annotations

import os
from pathlib import Path

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.removeprefix("export ").partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("\"'"))
