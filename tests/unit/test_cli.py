"""Unit tests for the gsb command line."""

import json
import os

import pytest
from click.testing import CliRunner

from gsb import cli, config, log
from gsb.snapshot.archive import archive
from tests.conftest import make_tree


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated ~/.gsb, audit log and storage root."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(config, "GLOBAL_CONFIG_FILE", home / "config.json")
    monkeypatch.setattr(config, "ENV_FILE", home / "env")
    monkeypatch.setattr(log, "LOGS_FILE", home / "logs.jsonl")
    monkeypatch.delenv("GSB_ROOT", raising=False)
    monkeypatch.delenv("GSB_STAGED_RESTORE", raising=False)
    live = make_tree(str(tmp_path / "live" / "game"))
    return {"root": str(tmp_path / "root"), "live": live, "home": home}


def invoke(env, *args, **kwargs):
    return CliRunner().invoke(cli.main, ["--root", env["root"], *args], **kwargs)


def add_save(env, stamp):
    archive(env["live"], os.path.join(env["root"], "game", stamp + ".zip"))


class TestCommands:
    """End-to-end runs of each command."""

    def test_add_and_targets(self, env):
        result = invoke(env, "add", "game", env["live"])
        assert result.exit_code == 0, result.output

        result = invoke(env, "targets")
        assert result.exit_code == 0
        assert "game" in result.output

    def test_targets_empty(self, env):
        result = invoke(env, "targets")
        assert result.exit_code == 0
        assert "No targets" in result.output

    def test_add_bad_name(self, env):
        result = invoke(env, "add", "../game", env["live"])
        assert result.exit_code == 1
        assert "bad name" in result.output

    def test_backup_and_saves(self, env):
        invoke(env, "add", "game", env["live"])

        result = invoke(env, "backup", "game")
        assert result.exit_code == 0, result.output
        assert "Saved" in result.output
        assert "backup  7 paths" in result.output

        (snapshot,) = [n for n in os.listdir(os.path.join(env["root"], "game")) if n.endswith(".zip")]
        result = invoke(env, "saves", "game")
        assert result.exit_code == 0
        assert snapshot in result.output
        assert "latest" in result.output

    def test_saves_unknown_target(self, env):
        result = invoke(env, "saves", "nope")
        assert result.exit_code == 1
        assert "unknown target" in result.output

    def test_delete_respects_retention(self, env):
        invoke(env, "add", "game", env["live"])
        add_save(env, "20240101120000")
        add_save(env, "20240102000000")

        result = invoke(env, "delete", "game", "20240102000000.zip")
        assert result.exit_code == 1
        assert "the first save cannot be deleted" in result.output

        result = invoke(env, "delete", "game", "20240101120000.zip")
        assert result.exit_code == 0, result.output
        assert sorted(os.listdir(os.path.join(env["root"], "game"))) == ["20240102000000.zip", "config.json"]

    def test_prune(self, env):
        invoke(env, "add", "game", env["live"])
        for stamp in ("20240101120000", "20240101120005", "20240102000000"):
            add_save(env, stamp)

        result = invoke(env, "prune", "game", "-y")
        assert result.exit_code == 0, result.output
        assert "2 save(s) removed" in result.output
        assert sorted(os.listdir(os.path.join(env["root"], "game"))) == ["20240102000000.zip", "config.json"]

    def test_prune_cancelled(self, env):
        invoke(env, "add", "game", env["live"])
        add_save(env, "20240101120000")
        add_save(env, "20240102000000")

        result = invoke(env, "prune", "game", input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert len(os.listdir(os.path.join(env["root"], "game"))) == 3

    def test_prune_single_save(self, env):
        invoke(env, "add", "game", env["live"])
        add_save(env, "20240101120000")

        result = invoke(env, "prune", "game", "-y")
        assert result.exit_code == 1
        assert "no save to be deleted" in result.output

    def test_restore(self, env):
        invoke(env, "add", "game", env["live"])
        add_save(env, "20240101120000")
        with open(os.path.join(env["live"], "a.txt"), "w") as f:
            f.write("changed")

        result = invoke(env, "restore", "game", "20240101120000.zip", "-y")
        assert result.exit_code == 0, result.output
        with open(os.path.join(env["live"], "a.txt"), "rb") as f:
            assert f.read() == b"alpha\n"

    def test_restore_declined(self, env):
        invoke(env, "add", "game", env["live"])
        add_save(env, "20240101120000")
        with open(os.path.join(env["live"], "a.txt"), "w") as f:
            f.write("changed")

        result = invoke(env, "restore", "game", "20240101120000.zip", input="n\n")
        assert result.exit_code == 0
        with open(os.path.join(env["live"], "a.txt")) as f:
            assert f.read() == "changed"

    def test_logs(self, env):
        invoke(env, "add", "game", env["live"])
        invoke(env, "backup", "game")

        result = invoke(env, "logs")
        assert result.exit_code == 0
        assert "backup" in result.output

    def test_logs_empty(self, env):
        result = invoke(env, "logs")
        assert "No logs found" in result.output

    def test_config(self, env, tmp_path):
        result = CliRunner().invoke(cli.main, ["config", "--root", str(tmp_path / "r"), "--staged"])
        assert result.exit_code == 0, result.output
        saved = json.loads((env["home"] / "config.json").read_text())
        assert saved == {"root": str(tmp_path / "r"), "staged_restore": True}
