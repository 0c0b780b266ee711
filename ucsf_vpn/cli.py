"""ucsf-vpn - connect to and disconnect from the UCSF VPN."""

import argparse
import sys

from ucsf_vpn.app import build_manager
from ucsf_vpn.config import ConfigManager
from ucsf_vpn.constants import APP_NAME, VERSION
from ucsf_vpn.errors import VPNError
from ucsf_vpn.tokens import describe_token
from ucsf_vpn.utils import configure_output, print_debug, print_error, print_info

COMMANDS = ("start", "stop", "restart", "toggle", "status", "details", "log",
            "troubleshoot", "open-gui", "close-gui")

EPILOG = """\
Examples:
  ucsf-vpn start --user=alice --token=push
  ucsf-vpn stop
  UCSF_VPN_TOKEN=prompt ucsf-vpn start --user=alice --pwd=secrets

Environment variables:
  UCSF_VPN_METHOD       Default value for --method
  UCSF_VPN_SERVER       Default value for --server
  UCSF_VPN_TOKEN        Default value for --token
  UCSF_VPN_THEME        Default value for --theme
  UCSF_VPN_VALIDATE     Default value for --validate
  UCSF_VPN_PING_SERVER  Ping server(s) to validate internet (default: 9.9.9.9)
  UCSF_VPN_EXTRAS       Additional arguments passed to the VPN client

User credentials:
  If --user and --pwd are neither given nor found in ~/.netrc, you will be
  prompted for them. The ~/.netrc file is made readable by its owner only.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Connect to and disconnect from the UCSF VPN.",
        epilog=EPILOG,
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument("command", nargs="?", choices=COMMANDS, metavar="command",
                        help="One of: " + ", ".join(COMMANDS))
    parser.add_argument("--version", action="version", version=VERSION)

    # Credentials
    cred_group = parser.add_argument_group("Credentials")
    cred_group.add_argument("--token", type=str, help=(
        "One-time two-factor authentication (2FA) token or method:\n"
        " 'prompt', 'push' (default), 'phone', 'sms',\n"
        " a 6 or 7 digit token, or a 44-letter YubiKey token"))
    cred_group.add_argument("--user", type=str, help="UCSF Active Directory ID (username)")
    cred_group.add_argument("--pwd", type=str, dest="password", help="UCSF Active Directory ID password")

    # Connection
    conn_group = parser.add_argument_group("Connection")
    conn_group.add_argument("--server", type=str, help="VPN server (default is 'remote.ucsf.edu')")
    conn_group.add_argument("--realm", type=str, help="VPN realm ('single', 'dual' or the full name)")
    conn_group.add_argument("--url", type=str, help="VPN URL (default is https://{server}/pulse)")
    conn_group.add_argument("--method", type=str, help="Either 'openconnect' (default) or 'pulse'")
    conn_group.add_argument("--validate", type=str, help="Either 'ipinfo', 'pid', or 'pid,ipinfo'")

    # Pulse Secure
    pulse_group = parser.add_argument_group("Pulse Secure (--method=pulse)")
    pulse_group.add_argument("--gui", dest="gui", action="store_true", default=None,
                             help="Connect via the Pulse Secure GUI (default)")
    pulse_group.add_argument("--no-gui", dest="gui", action="store_false",
                             help="Connect via the Pulse Secure CLI")
    pulse_group.add_argument("--notification", dest="notification", action="store_true", default=None,
                             help="Click through the notification popup window")
    pulse_group.add_argument("--no-notification", dest="notification", action="store_false",
                             help="There is no notification popup window (default)")
    pulse_group.add_argument("--speed", type=str, help="Speed factor of GUI interactions (default is 1.0)")
    pulse_group.add_argument("--popup-timeout", type=float, dest="popup_timeout", metavar="SECONDS",
                             help="Give up waiting for the login popup to close (default: wait forever)")

    # Flags
    flag_group = parser.add_argument_group("Flags")
    flag_group.add_argument("--theme", type=str, help="Either 'cli' (default) or 'none'")
    flag_group.add_argument("--verbose", action="store_true", default=None, help="More verbose output")
    flag_group.add_argument("--debug", action="store_true", default=None, help="Debug output")
    flag_group.add_argument("--force", action="store_true", default=None, help="Force command")
    flag_group.add_argument("--dry-run", dest="dry_run", action="store_true", default=None,
                            help="Show what would be done")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    overrides = {key: value for key, value in vars(args).items() if key != "command"}
    if extras:
        overrides["extras"] = " ".join(extras)

    manager = None
    try:
        config = ConfigManager().build(overrides)
        configure_output(verbose=config.verbose, debug=config.debug, theme=config.theme)
        print_debug(f"action: {args.command}")
        print_debug(f"VPN server: {config.server}")
        print_debug(f"Realm: '{config.realm.value}'")
        print_debug(f"token={describe_token(config.token)}")
        print_debug(f"method: {config.backend.value}, gui: {config.gui}, speed: {config.speed}")

        manager = build_manager(config)

        action_handlers = {
            "start": manager.start,
            "stop": manager.stop,
            "restart": manager.restart,
            "toggle": manager.toggle,
            "status": manager.status,
            "details": manager.details,
            "log": manager.log,
            "troubleshoot": manager.troubleshoot,
            "open-gui": manager.open_gui,
            "close-gui": manager.close_gui,
        }
        print_info(f"Executing action: {args.command}...")
        result = action_handlers[args.command]()
        # 'log' reports a missing log file by returning False
        return 1 if result is False else 0
    except VPNError as e:
        version = f"{APP_NAME} {VERSION}"
        if manager is not None:
            version += f", {manager.driver.name} {manager.driver.version()}"
        print_error(f"{e} [{version}]")
        return e.exit_code
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 1
    finally:
        if manager is not None:
            manager.prober.invalidate()


if __name__ == "__main__":
    sys.exit(main())
