# tests/conftest.py
import subprocess

import pytest

from wanq import config as wconfig
from wanq import db, shaper


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (needs a real router)"
    )
    config.addinivalue_line(
        "markers", "offline: mark test as offline test (no external commands executed)"
    )


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "integration" not in item.keywords:
            item.add_marker(pytest.mark.offline)


class CommandRecorder:
    """Stands in for subprocess.run: records argv, answers by command prefix."""

    def __init__(self):
        self.calls = []
        self.outputs = {}
        self.missing = set()

    def __call__(self, cmd, capture_output=True, text=True, check=True, timeout=None):
        self.calls.append(list(cmd))
        key = " ".join(str(c) for c in cmd)
        for prefix, out in self.outputs.items():
            if key.startswith(prefix):
                if isinstance(out, BaseException):
                    raise out
                return subprocess.CompletedProcess(cmd, 0, stdout=out, stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def which(self, name):
        return None if name in self.missing else f"/usr/bin/{name}"

    def joined(self):
        return [" ".join(str(c) for c in cmd) for cmd in self.calls]


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    snapshot = {k: v for k, v in vars(wconfig).items() if k.isupper()}
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "wanq.db"))
    monkeypatch.setattr(shaper, "_warned_missing", False)
    wconfig.LOCK_DIR = str(tmp_path / "wanq.lock")
    wconfig.LOG_DIR = str(tmp_path / "logs")
    wconfig.WAN_DEV = "wan0"
    wconfig.TELEMETRY_FILE = ""
    wconfig.DRY_RUN = 0
    wconfig.SQM_INIT = str(tmp_path / "no-sqm")
    db.init_db()
    yield tmp_path
    for k, v in snapshot.items():
        setattr(wconfig, k, v)


@pytest.fixture(autouse=True)
def commands(monkeypatch):
    rec = CommandRecorder()
    monkeypatch.setattr("wanq.system.subprocess.run", rec)
    monkeypatch.setattr("wanq.system.shutil.which", rec.which)
    return rec


@pytest.fixture
def sqm_init(tmp_path):
    """An executable stand-in for the SQM init script."""
    path = tmp_path / "sqm"
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    wconfig.SQM_INIT = str(path)
    return str(path)
