"""CLI tests."""

from click.testing import CliRunner

from medrelay import __version__
from medrelay.auth.jwt import verify_token
from medrelay.cli.main import cli


def test_token_command_mints_verifiable_token():
    result = CliRunner().invoke(cli, ["token", "U7"])
    assert result.exit_code == 0
    assert verify_token(result.output.strip())["sub"] == "U7"


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_serve_help_lists_options():
    result = CliRunner().invoke(cli, ["serve", "--help"])
    assert result.exit_code == 0
    assert "--port" in result.output
