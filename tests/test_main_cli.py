from pathlib import Path

from main import _parse_args, main


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 8000


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_create_user_subcommand_parses_role() -> None:
    args = _parse_args(["create-user", "Ada", "ada@example.com", "0100", "--role", "admin"])
    assert args.command == "create-user"
    assert args.name == "Ada"
    assert args.role == "admin"


def test_create_and_list_users(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("ACCOUNTS_SECRET_KEY", "cli-secret-key-0123456789abcdefghijkl")
    monkeypatch.setenv("ACCOUNTS_DB_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setenv("ACCOUNTS_PASSWORD_ROUNDS", "1000")
    monkeypatch.setattr("main.getpass", lambda prompt="": "cli-password")

    config = str(tmp_path / "absent.yaml")
    assert main(["create-user", "Ada", "ada@example.com", "0100", "--role", "admin", "--config", config]) == 0
    assert main(["create-user", "Ada", "ADA@example.com", "0100", "--config", config]) == 1

    main(["list-users", "--config", config])
    output = capsys.readouterr().out
    assert "ada@example.com" in output
    assert "admin" in output
    assert "1 user(s) found" in output
