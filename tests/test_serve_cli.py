from __future__ import annotations

import json
from pathlib import Path

import pytest

from gradeboard.cli import serve
from gradeboard.core.config import CONFIG_ENV_VAR, DEFAULT_STUNO_ENV_VAR, PORT_ENV_VAR


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (CONFIG_ENV_VAR, PORT_ENV_VAR, DEFAULT_STUNO_ENV_VAR):
        monkeypatch.delenv(name, raising=False)


def test_check_prints_resolved_settings(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = serve.main(["--check", "--port", "8080", "--default-stuno", " 20201234 "])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["server"]["port"] == 8080
    assert payload["server"]["host"] == "127.0.0.1"
    assert payload["default_stuno"] == "20201234"
    assert payload["collector"]["collect_command"] == ["node", "index.js"]


def test_check_with_missing_config_uses_defaults(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = serve.main(["--check", "--repo-root", str(tmp_path), "--config", "missing.yaml"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["data"]["analysis_dir"] == str(tmp_path.resolve() / "analysis")
    assert payload["server"]["port"] == 3000


def test_invalid_config_exits_with_usage_error(tmp_path: Path) -> None:
    config_path = tmp_path / "dashboard.yaml"
    config_path.write_text("server:\n  port: 0\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        serve.main(["--check", "--config", str(config_path)])

    assert excinfo.value.code == 2


def test_serve_installs_overrides_and_runs_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    import uvicorn

    from apps.dashboard.main import app, get_services, get_settings

    calls = {}

    def _fake_run(target, **kwargs):
        calls["target"] = target
        calls.update(kwargs)
        calls["settings"] = target.dependency_overrides[get_settings]()

    monkeypatch.setattr(uvicorn, "run", _fake_run)
    try:
        exit_code = serve.main(["--host", "0.0.0.0", "--port", "9000"])
    finally:
        overrides = dict(app.dependency_overrides)
        app.dependency_overrides.pop(get_settings, None)
        app.dependency_overrides.pop(get_services, None)

    assert exit_code == 0
    assert calls["target"] is app
    assert calls["host"] == "0.0.0.0"
    assert calls["port"] == 9000
    assert calls["settings"].server.port == 9000
    assert get_services in overrides
