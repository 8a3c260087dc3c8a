from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


class _FakeExecutor(SimpleNamespace):
    """Minimal executor stub for API lifecycle tests."""


def test_create_app_boot_runtime_false_does_not_attach_executor() -> None:
    from rewardstreams.api.app import create_app

    app = create_app(boot_runtime=False)
    assert getattr(app.state, "executor", None) is None

    # App should still be startable for route/middleware tests.
    with TestClient(app) as client:
        assert client.get("/v1/health").json()["executor"] is False
        r = client.get("/v1/epochs/current")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boot_runtime_true_attaches_executor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from rewardstreams.api import app as api_app

    # create_app exports the effective config to env; pin the keys so they are restored.
    monkeypatch.delenv("REWARDSTREAMS_CONFIG_PATH", raising=False)
    monkeypatch.setenv("REWARDSTREAMS_INSTANCE_ID", "rewardstreams-test")
    monkeypatch.setenv("REWARDSTREAMS_MODE", "prod")
    monkeypatch.setenv("REWARDSTREAMS_VARIANT", "tracking")
    monkeypatch.setenv("REWARDSTREAMS_DB_PATH", str(tmp_path / "rs.db"))
    monkeypatch.setenv("REWARDSTREAMS_LOG_LEVEL", "INFO")
    monkeypatch.setenv("REWARDSTREAMS_ALLOW_UNSIGNED_TXS", "0")

    seen = {}

    def _fake_build_executor(cfg):
        seen["cfg"] = cfg
        return _FakeExecutor(instance_id=cfg.instance_id, config=cfg)

    monkeypatch.setattr(api_app, "build_executor", _fake_build_executor)

    app = api_app.create_app(boot_runtime=True)
    assert getattr(app.state, "executor", None) is not None
    assert app.state.executor.instance_id == "rewardstreams-test"
    assert seen["cfg"].variant == "tracking"
    # prod hides the interactive docs
    assert app.docs_url is None

    with TestClient(app) as _client:
        pass
