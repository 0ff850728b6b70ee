from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080
    assert args.config is None


def test_config_option_is_accepted_before_serve_options() -> None:
    args = _parse_args(["--config", "/etc/ctfadmin.yaml", "--port", "9000"])
    assert args.command == "serve"
    assert args.config == "/etc/ctfadmin.yaml"
    assert args.port == 9000


def test_notices_subcommand_still_available() -> None:
    args = _parse_args(["notices", "--service-url", "https://ctf.example.com"])
    assert args.command == "notices"
    assert args.service_url == "https://ctf.example.com"


def test_init_db_subcommand() -> None:
    args = _parse_args(["init-db"])
    assert args.command == "init-db"
