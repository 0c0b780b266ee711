"""
Unit tests for the command-line interface
"""
from unittest.mock import MagicMock, patch

import pytest

from ucsf_vpn.cli import build_parser, main
from ucsf_vpn.errors import StateConflictError, UserInputError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for name in ("UCSF_VPN_METHOD", "UCSF_VPN_SERVER", "UCSF_VPN_TOKEN", "UCSF_VPN_THEME",
                 "UCSF_VPN_VALIDATE", "UCSF_VPN_PING_SERVER", "UCSF_VPN_EXTRAS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def manager():
    mock_manager = MagicMock()
    mock_manager.driver.name = "openconnect"
    mock_manager.driver.version.return_value = "8.20"
    with patch("ucsf_vpn.cli.build_manager", return_value=mock_manager) as mock_build:
        mock_manager.build = mock_build
        yield mock_manager


class TestParser:
    """Test cases for the argument parser"""

    def test_flags_default_to_none(self):
        args = build_parser().parse_args(["start"])
        assert args.force is None
        assert args.gui is None
        assert args.password is None

    def test_no_gui(self):
        args = build_parser().parse_args(["start", "--no-gui", "--pwd=secrets"])
        assert args.gui is False
        assert args.password == "secrets"

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["connect"])


class TestMain:
    """Test cases for main"""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: ucsf-vpn" in capsys.readouterr().out

    def test_dispatch(self, manager):
        assert main(["status"]) == 0
        manager.status.assert_called_once_with()
        manager.prober.invalidate.assert_called_once()

    def test_extras_are_passed_through(self, manager):
        main(["start", "--no-dtls"])
        config = manager.build.call_args[0][0]
        assert config.extras == ("--no-dtls",)
        manager.start.assert_called_once_with()

    def test_log_without_file(self, manager):
        manager.log.return_value = False
        assert main(["log"]) == 1

    def test_error_message_includes_versions(self, manager, capsys):
        manager.start.side_effect = UserInputError("bad realm")
        assert main(["start"]) == 1
        assert "ERROR: bad realm [ucsf-vpn 5.3.0, openconnect 8.20]" in capsys.readouterr().out
        manager.prober.invalidate.assert_called_once()

    def test_state_conflict_exits_zero(self, manager):
        manager.open_gui.side_effect = StateConflictError("Already connected")
        assert main(["open-gui"]) == 0

    def test_invalid_option(self, manager, capsys):
        assert main(["start", "--method=wireguard"]) == 1
        assert "--method" in capsys.readouterr().out
        manager.build.assert_not_called()
