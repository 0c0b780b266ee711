"""
OpenConnect driver for ucsf-vpn.
Connects to the VPN using the headless 'openconnect' command-line client.
"""

import re
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List

from ucsf_vpn.backend import BackendDriver
from ucsf_vpn.config import SessionConfig
from ucsf_vpn.connectivity import ConnectivityProber
from ucsf_vpn.constants import OPENCONNECT_KILL_TIMEOUT
from ucsf_vpn.credentials import CredentialResolver, Credentials
from ucsf_vpn.errors import (
    AuthFailure,
    FailureReason,
    TransientNetworkError,
    UserInputError,
    VPNEnvironmentError,
)
from ucsf_vpn.process import ProcessTracker
from ucsf_vpn.status import StatusEngine
from ucsf_vpn.tokens import describe_token, is_token_enabled
from ucsf_vpn.utils import (
    command_output,
    print_debug,
    print_info,
    print_plain,
    print_warning,
    with_spinner,
)

SYSLOG_FILE = Path("/var/log/syslog")

# Post-mortem signatures in openconnect's standard error:
#  - a wrong token (or a declined push) asks for a second password: "password#2:"
#  - a wrong username or password ends with "username:password:"
_FAILURE_PATTERNS = (
    (re.compile(r"password#2"), FailureReason.TOKEN_REJECTED),
    (re.compile(r"username:password"), FailureReason.CREDENTIALS_REJECTED),
)


def classify_connect_failure(stderr: str) -> FailureReason:
    """Guess why openconnect failed to connect from its standard error."""
    for pattern, reason in _FAILURE_PATTERNS:
        if pattern.search(stderr or ""):
            return reason
    return FailureReason.UNKNOWN


class OpenConnectDriver(BackendDriver):
    """Handles all interactions with the local 'openconnect' client."""

    name = "openconnect"

    def __init__(self, config: SessionConfig, tracker: ProcessTracker, prober: ConnectivityProber,
                 status: StatusEngine, resolver: CredentialResolver):
        super().__init__(config, prober, status, resolver)
        self.tracker = tracker

    def validate(self) -> None:
        realm = self.config.realm
        if realm.dual_factor:
            raise UserInputError(
                f"Using --realm='{realm.value}' (two-factor authentication; 2FA) is not supported "
                "when using --method=openconnect"
            )
        if is_token_enabled(self.config.token):
            raise UserInputError(
                f"Using --token='{describe_token(self.config.token)}' suggests two-factor authentication (2FA), "
                "which is not supported when using --method=openconnect"
            )

    def build_arguments(self, credentials: Credentials) -> List[str]:
        """Command-line arguments for 'openconnect' (without 'sudo')."""
        args = list(self.config.extras)
        args += ["--juniper", self.config.url, "--background"]
        if credentials.username:
            args.append(f"--user={credentials.username}")
        if credentials.password:
            args.append("--passwd-on-stdin")
        args.append(f"--pid-file={self.config.pid_file}")
        if not self.config.debug:
            args.append("--quiet")
        args.append(f"--authgroup={self.config.realm.value}")
        return args

    def start(self, force: bool = False) -> None:
        """Connect the local 'openconnect' VPN client."""
        self.validate()
        print_debug("openconnect_start() ...")

        self.ensure_not_connected(force)

        if self.tracker.pid_file_exists():
            raise VPNEnvironmentError(
                "Hmm, this might be a bug. Do you already have an active VPN connection? "
                f"(Detected PID file '{self.tracker.pid_file}')",
                hint=f"If incorrect, remove with 'sudo rm {self.tracker.pid_file}'"
            )

        if not self.prober.is_online():
            raise TransientNetworkError("Internet connection is not working")

        print_info(f"Preparing to connect to VPN server '{self.config.server}'")
        self.assert_sudo("start")

        credentials = self.resolve_credentials()
        args = self.build_arguments(credentials)
        print_debug(f"user: {credentials.username}")
        print_debug(f"pwd: {'<hidden>' if credentials.password else '<not specified>'}")
        print_debug(f"call: sudo openconnect {shlex.join(args)}")

        print_info(f"Connecting to VPN server '{self.config.server}'")
        if self.config.dry_run:
            prefix = "echo \"<pwd>\" | " if credentials.password else ""
            print_plain(f"{prefix}sudo openconnect {shlex.join(args)}")
            return

        stdin = f"{credentials.password}\n" if credentials.password else None
        # stderr goes to a file; openconnect --background keeps inherited pipes open
        with tempfile.TemporaryFile(mode="w+") as stderr_file:
            subprocess.run(["sudo", "openconnect"] + args, input=stdin, stderr=stderr_file,
                           text=True, check=False)
            stderr_file.seek(0)
            stderr = stderr_file.read()

        self.prober.invalidate()
        print_debug("OpenConnect standard error:")
        print_debug(stderr)

        if self.tracker.current_pid() is None:
            if stderr:
                print_plain(stderr)
            raise AuthFailure(
                "Failed to connect to VPN server (no running OpenConnect process)",
                classify_connect_failure(stderr),
            )
        print_info("Connected to VPN server")

    def stop(self, force: bool = False) -> None:
        """Disconnect the local 'openconnect' VPN client."""
        print_debug("openconnect_stop() ...")
        process = self.tracker.current_process()
        if process is None:
            print_warning("Could not detect a VPN ('openconnect') process. Skipping.")
            return

        print_info("Disconnecting from VPN server")
        if self.config.dry_run:
            print_plain(f"sudo kill -s INT {process.pid}")
            return

        self.assert_sudo("stop")
        process.interrupt(use_sudo=True)

        with with_spinner(f"Waiting for OpenConnect (PID {process.pid}) to terminate..."):
            terminated = process.wait(timeout=OPENCONNECT_KILL_TIMEOUT)

        self.prober.invalidate()

        if not terminated:
            raise VPNEnvironmentError(
                f"Failed to terminate VPN process ('openconnect' with PID {process.pid})",
                hint="You could manually kill *all* OpenConnect processes by calling "
                     "'sudo pkill -INT openconnect'. CAREFUL!"
            )

        # openconnect removes its PID file on a clean exit
        if self.tracker.remove_pid_file():
            print_warning(f"OpenConnect PID file removed manually: {self.tracker.pid_file}")

        print_info("Disconnected from VPN server")

    def version(self) -> str:
        output = command_output(["openconnect", "--version"])
        for line in output.splitlines():
            if "version" in line:
                return re.sub(r".*v", "", line, count=1).strip()
        return "<PLEASE INSTALL>"

    def log(self) -> bool:
        print_info(f"Displaying 'VPN' entries in log file: {SYSLOG_FILE}")
        if not SYSLOG_FILE.is_file():
            print_warning(f"No such log file: {SYSLOG_FILE}")
            return False
        with open(SYSLOG_FILE, errors="replace") as file:
            for line in file:
                if "VPN" in line:
                    print_plain(line.rstrip("\n"))
        return True

    def troubleshoot(self) -> None:
        raise UserInputError("ucsf-vpn troubleshoot is not implemented for --method=openconnect")
