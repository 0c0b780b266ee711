"""Common interface of the VPN backend drivers."""

import os
import socket
from abc import ABC, abstractmethod
from typing import Optional

from ucsf_vpn.config import SessionConfig
from ucsf_vpn.connectivity import ConnectivityProber
from ucsf_vpn.credentials import CredentialResolver, Credentials
from ucsf_vpn.errors import StateConflictError, VPNEnvironmentError
from ucsf_vpn.status import StatusEngine
from ucsf_vpn.utils import print_debug, print_info, print_warning, run_command


class BackendDriver(ABC):
    """A VPN client that can be started and stopped."""

    name = "backend"

    # Seconds (before speed scaling) to let the backend settle after an action
    post_start_delay = 0.0
    post_stop_delay = 0.0

    def __init__(self, config: SessionConfig, prober: ConnectivityProber, status: StatusEngine,
                 resolver: CredentialResolver):
        self.config = config
        self.prober = prober
        self.status = status
        self.resolver = resolver

    @abstractmethod
    def validate(self) -> None:
        """Reject invalid realm/token combinations before any side effect."""

    @abstractmethod
    def start(self, force: bool = False) -> None:
        """Connect to the VPN."""

    @abstractmethod
    def stop(self, force: bool = False) -> None:
        """Disconnect from the VPN."""

    @abstractmethod
    def version(self) -> str:
        """Version of the installed client software."""

    @abstractmethod
    def log(self) -> bool:
        """Display the client's log entries. Returns False if there is no log."""

    @abstractmethod
    def troubleshoot(self) -> None:
        """Scan the client's configuration and log for problems."""

    def resolve_credentials(self) -> Credentials:
        return self.resolver.resolve(
            explicit_user=self.config.user,
            explicit_pwd=self.config.password,
            explicit_token=self.config.token,
            realm=self.config.realm,
        )

    def ensure_not_connected(self, force: bool) -> None:
        """Raise StateConflictError if already connected (unless forced)."""
        if force:
            return
        if self.status.is_connected():
            raise StateConflictError(f"Already connected to the VPN [{self.prober.identity().describe()}]")

    def assert_sudo(self, action: Optional[str] = None) -> None:
        """Make sure administrative ('sudo') rights are established."""
        success, _ = run_command(["sudo", "-v", "-n"], check=True, silent=True)
        if success:
            print_debug("'sudo' is already active")
            print_info("Administrative (\"sudo\") rights already established")
            return
        print_debug("'sudo' is not active")

        what = f" ('ucsf-vpn {action}')" if action else ""
        print_warning(f"This action{what} requires administrative (\"sudo\") rights.")
        user = os.environ.get("USER", "")
        prompt = f"Enter the password for your account ('{user}') on your local computer ('{socket.gethostname()}'): "
        run_command(["sudo", "-v", "-p", prompt], check=True, capture_output=False, silent=True)

        success, _ = run_command(["sudo", "-v", "-n"], check=True, silent=True)
        if not success:
            raise VPNEnvironmentError(
                "Failed to establish 'sudo' access. Please check your password. "
                "It might also be that you do not have administrative rights on this machine"
            )
        print_info("Administrative (\"sudo\") rights established")
