from __future__ import annotations

import json

from typer.testing import CliRunner

from planmate import config, database
from planmate.cli import app
from planmate.crud import get_user_by_email

runner = CliRunner()


def test_create_user_prints_token():
    result = runner.invoke(app, ["create-user", "Cli@Example.com", "Cli User"])
    assert result.exit_code == 0, result.output
    token = result.output.strip()

    session = database.SessionLocal()
    try:
        user = get_user_by_email(session, "cli@example.com")
        assert user is not None
        assert user.api_token == token
    finally:
        session.close()

    duplicate = runner.invoke(app, ["create-user", "cli@example.com", "Again"])
    assert duplicate.exit_code == 1


def test_rotate_token_for_unknown_user_fails():
    result = runner.invoke(app, ["rotate-token", "nobody@example.com"])
    assert result.exit_code == 1


def test_config_set_and_show(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "settings", config.settings)
    target = tmp_path / "planmate.toml"

    result = runner.invoke(
        app,
        ["config", "--config-path", str(target), "--set", "events_per_page=20", "--show"],
    )

    assert result.exit_code == 0, result.output
    assert "events_per_page = 20" in target.read_text()
    shown = json.loads(result.output.split("\n", 1)[1])
    assert shown["events_per_page"] == 20
    assert shown["config_path"] == str(target)


def test_config_rejects_unknown_key(tmp_path):
    result = runner.invoke(
        app, ["config", "--config-path", str(tmp_path / "x.toml"), "--set", "bogus=1"]
    )
    assert result.exit_code == 1
