"""
Tests for the command-line interface.

Commands run end to end against a temporary SQLite database in dry-run
mode, so neither the lookup provider nor any channel is contacted.
"""

import json

import pytest

from domain_watcher.cli import create_parser, main

from doubles import CONFIG_ENV_VARS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_args(tmp_path):
    return ["--db", str(tmp_path / "watchlist.db"), "--dry-run"]


def run_json(capsys, argv):
    code = main(argv)
    return code, json.loads(capsys.readouterr().out)


class TestParser:
    def test_tick_flags(self) -> None:
        args = create_parser().parse_args(["tick", "--force", "--db", "w.db"])

        assert args.command == "tick"
        assert args.force is True
        assert args.db == "w.db"
        assert args.dry_run is False

    def test_check_due_limit(self) -> None:
        args = create_parser().parse_args(["check-due", "-n", "5"])

        assert args.limit == 5

    def test_settings_resend(self) -> None:
        args = create_parser().parse_args([
            "settings", "resend", "--api-key", "re_1", "--from", "a@x.io",
            "--to", "b@x.io", "--time", "09:00",
        ])

        assert args.action == "resend"
        assert (args.from_email, args.to_email) == ("a@x.io", "b@x.io")
        assert args.test is False

    def test_unknown_status_is_rejected(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["list", "--status", "parked"])

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "domain-watcher" in capsys.readouterr().out


class TestWatchlistCommands:
    def test_add_list_remove(self, capsys, db_args) -> None:
        code, added = run_json(capsys, ["add", "Example.COM", *db_args])
        assert code == 0
        assert added["status"] == 201

        code, duplicate = run_json(capsys, ["add", "example.com", *db_args])
        assert code == 1
        assert duplicate["status"] == 409

        _, listed = run_json(capsys, ["list", *db_args])
        domains = listed["data"]["domains"]
        assert [d["name"] for d in domains] == ["example.com"]
        assert domains[0]["status"] == "not_checked"

        code, removed = run_json(capsys, ["remove", str(domains[0]["id"]), *db_args])
        assert code == 0
        assert removed["status"] == 200

    def test_invalid_domain(self, capsys, db_args) -> None:
        code, result = run_json(capsys, ["add", "example.com/path", *db_args])

        assert code == 1
        assert result["status"] == 400
        assert result["data"]["code"] == "has_path"

    def test_check_in_dry_run(self, capsys, db_args) -> None:
        run_json(capsys, ["add", "example.com", *db_args])

        code, result = run_json(capsys, ["check", "1", *db_args])

        assert code == 0
        assert result["data"]["status"] == "registered"

    def test_check_due_with_nothing_due(self, capsys, db_args) -> None:
        code, result = run_json(capsys, ["check-due", *db_args])

        assert code == 0
        assert result["status"] == 204


class TestTickCommand:
    def test_skipped_without_channels(self, capsys, db_args) -> None:
        code, result = run_json(capsys, ["tick", "--force", *db_args])

        assert code == 0
        assert result["action"] == "skipped"
        assert result["reason"] == "No channels scheduled"

    def test_forced_tick_reports_to_enabled_channel(self, capsys, db_args) -> None:
        run_json(capsys, ["add", "example.com", *db_args])
        code, saved = run_json(capsys, [
            "settings", "slack", "--webhook-url", "https://hooks.slack.com/services/T0/B0/x",
            "--time", "9:00", *db_args,
        ])
        assert code == 0 and saved["status"] == 201
        run_json(capsys, ["settings", "enable", "slack", *db_args])

        code, result = run_json(capsys, ["tick", "--force", *db_args])

        assert code == 0
        assert result["action"] == "executed"
        assert result["domains"]["checked"] == 1
        assert result["notifications"] == {"sent": 1, "providers": ["slack"]}

    def test_settings_show_masks_secrets(self, capsys, db_args) -> None:
        webhook = "https://hooks.slack.com/services/T0/B0/secret"
        run_json(capsys, ["settings", "slack", "--webhook-url", webhook, "--time", "08:30", *db_args])

        code, shown = run_json(capsys, ["settings", "show", "slack", *db_args])

        assert code == 0
        assert shown["notification_time"] == "08:30"
        assert webhook not in json.dumps(shown)


class TestApiKeyCommands:
    def test_save_then_show_masked(self, capsys, db_args) -> None:
        code, saved = run_json(capsys, ["settings", "api-key", "--key", "whois-key-123456", *db_args])

        assert code == 0
        assert saved["status"] == 201
        assert saved["data"]["connection_status"] == "valid"

        code, shown = run_json(capsys, ["settings", "api-key-show", *db_args])

        assert code == 0
        assert shown["data"]["configured"] is True
        assert shown["data"]["api_key"] == "whois-" + "*" * 10

    def test_stored_key_unlocks_manual_lookups(self, capsys, tmp_path) -> None:
        db = ["--db", str(tmp_path / "watchlist.db")]

        code, refused = run_json(capsys, ["check", "99", *db])
        assert code == 1
        assert refused["status"] == 400

        run_json(capsys, ["settings", "api-key", "--key", "whois-key-123456", *db, "--dry-run"])

        code, missing = run_json(capsys, ["check", "99", *db])
        assert code == 1
        assert missing["status"] == 404

    def test_demo_mode_refuses(self, capsys, monkeypatch, db_args) -> None:
        monkeypatch.setenv("ENVIRONMENT", "demo")

        code, result = run_json(capsys, ["settings", "api-key", "--key", "whois-key-123456", *db_args])

        assert code == 1
        assert result["status"] == 403

    def test_unconfigured_show(self, capsys, db_args) -> None:
        code, shown = run_json(capsys, ["settings", "api-key-show", *db_args])

        assert code == 0
        assert shown["data"]["connection_status"] == "not_configured"


class TestConfigCommand:
    def test_init_then_show(self, capsys, tmp_path) -> None:
        path = tmp_path / "config.json"

        assert main(["config", "init", "--path", str(path)]) == 0
        assert path.exists()
        assert main(["config", "init", "--path", str(path)]) == 1
        assert main(["config", "init", "--path", str(path), "--force"]) == 0
        capsys.readouterr()

        assert main(["config", "show", "--path", str(path)]) == 0
        assert "Timezone: UTC" in capsys.readouterr().out

    def test_show_missing(self, tmp_path) -> None:
        assert main(["config", "show", "--path", str(tmp_path / "none.json")]) == 1

    def test_unloadable_config_file(self, tmp_path, db_args) -> None:
        path = tmp_path / "broken.json"
        path.write_text("[", encoding="utf-8")

        assert main(["list", "--config", str(path), *db_args]) == 1
