"""Tests for the run.py entrypoint helpers."""

from __future__ import annotations

from types import SimpleNamespace

from typer.testing import CliRunner

import run
from portal.services.storage import PortalRepository


def _setup_serve(monkeypatch, tmp_path, **options):
    captured = {}

    monkeypatch.setattr(run, "initialize_app", lambda: SimpleNamespace(storage_root=tmp_path))
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)
    monkeypatch.setattr(run, "PortalRepository", lambda config: object())

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def fake_create_app(repository, config, root_path):
        captured["app_root_path"] = root_path
        return dummy_app

    monkeypatch.setattr(run, "create_app", fake_create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    class DummyThread:
        def __init__(self, target, daemon):
            captured["thread_target"] = target
            captured["thread_daemon"] = daemon

        def start(self):
            captured["thread_started"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)
    monkeypatch.setattr(run.threading, "Thread", DummyThread)
    monkeypatch.setattr(run.time, "sleep", lambda seconds: None)
    monkeypatch.setattr(
        run.webbrowser,
        "open",
        lambda url, **kwargs: captured.setdefault("browser_url", url) is not None,
    )

    run.serve(host="0.0.0.0", port=9000, root_path="portal/", **options)

    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_wires_uvicorn_server(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, open_browser=False)

    assert captured["server_run"] is True
    assert captured["app_state_server"] is captured["server_instance"]
    assert captured["app_root_path"] == "/portal"
    assert captured["config_kwargs"]["root_path"] == "/portal"
    assert captured["config_kwargs"]["log_config"] is None
    assert "thread_started" not in captured


def test_serve_opens_api_docs_when_requested(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, open_browser=True)

    assert captured["thread_started"] is True
    assert captured["thread_daemon"] is True
    captured["thread_target"]()
    assert captured["browser_url"] == "http://127.0.0.1:9000/portal/docs"


def test_normalize_root_path():
    assert run._normalize_root_path(None) == ""
    assert run._normalize_root_path("  ") == ""
    assert run._normalize_root_path("/portal/") == "/portal"


def _seed(config):
    repository = PortalRepository(config)
    category_id = repository.add_category("Product")
    module = repository.insert_module(category_id, "Roadmap")
    first = repository.add_video("Vision", category_ids=[category_id], duration=100, module_id=module.id)
    second = repository.add_video("Quarterly plan", category_ids=[category_id], duration=100, module_id=module.id)
    user_id = repository.add_user("Mo", "mo@example.com")
    repository.grant_category(user_id, category_id)
    repository.record_watch(user_id, first, 50)
    repository.record_watch(user_id, second, 100, completed=True)
    return user_id


def _patch_cli(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)


def test_progress_command_prints_dashboard(monkeypatch, temp_config):
    _patch_cli(monkeypatch, temp_config)
    user_id = _seed(temp_config)

    result = CliRunner().invoke(run.cli, ["progress", str(user_id)])

    assert result.exit_code == 0, result.output
    assert "Overall: 75%" in result.output
    assert "Roadmap: 75%" in result.output
    assert "Vision (50%)" in result.output


def test_progress_command_fails_for_unknown_user(monkeypatch, temp_config):
    _patch_cli(monkeypatch, temp_config)

    result = CliRunner().invoke(run.cli, ["progress", "999"])

    assert result.exit_code == 1
    assert "User 999 not found" in result.output


def test_overview_console_style(monkeypatch, temp_config):
    _patch_cli(monkeypatch, temp_config)
    user_id = _seed(temp_config)

    result = CliRunner().invoke(run.cli, ["overview", "--style", "console", "--user", str(user_id)])

    assert result.exit_code == 0, result.output
    assert "Category: Product" in result.output
    assert "Module: Roadmap" in result.output
    assert "Video: Vision (100s)" in result.output
