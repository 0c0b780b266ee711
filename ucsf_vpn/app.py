"""VPNManager Application Class - Orchestrates the VPN session lifecycle."""

import time
from typing import Callable, Optional

from ucsf_vpn.backend import BackendDriver
from ucsf_vpn.config import Backend, SessionConfig
from ucsf_vpn.connectivity import ConnectivityProber
from ucsf_vpn.credentials import CredentialResolver
from ucsf_vpn.errors import StateConflictError, UserInputError
from ucsf_vpn.openconnect import OpenConnectDriver
from ucsf_vpn.process import ProcessTracker
from ucsf_vpn.pulse import PulseDriver
from ucsf_vpn.status import Expectation, StatusEngine, Verdict
from ucsf_vpn.ui import PromptUI
from ucsf_vpn.utils import print_debug, print_plain, print_warning


class VPNManager:
    """
    VPNManager is the central orchestrator that coordinates actions among
    the backend driver, the StatusEngine and the ConnectivityProber.

    Every state-changing command ends by discarding the cached public IP
    information and checking the observed state against the expected one;
    the observed state wins over what the backend reported.
    """

    def __init__(self, config: SessionConfig, driver: BackendDriver, status: StatusEngine,
                 prober: ConnectivityProber, sleep: Callable[[float], None] = time.sleep):
        """Initialize the VPNManager with all needed services."""
        self.config = config
        self.driver = driver
        self.status_engine = status
        self.prober = prober
        self.sleep = sleep

    def _force(self, force: Optional[bool]) -> bool:
        return self.config.force if force is None else force

    def _settle(self, seconds: float) -> None:
        if seconds > 0 and not self.config.dry_run:
            self.sleep(self.config.scaled(seconds))

    def _run_transition(self, action: Callable[[bool], None], force: bool, settle: float,
                        expectation: Expectation) -> Optional[Verdict]:
        """Run a backend action followed by the post-condition check."""
        try:
            action(force)
        except StateConflictError as e:
            print_warning(str(e))
            return None

        if self.config.dry_run:
            return None

        self._settle(settle)
        self.prober.invalidate()
        return self.status_engine.evaluate(expectation)

    def start(self, force: Optional[bool] = None) -> Optional[Verdict]:
        """Connect to the VPN and assert that we are connected."""
        return self._run_transition(self.driver.start, self._force(force),
                                    self.driver.post_start_delay, Expectation.CONNECTED)

    def stop(self, force: Optional[bool] = None) -> Optional[Verdict]:
        """Disconnect from the VPN and assert that we are disconnected."""
        return self._run_transition(self.driver.stop, self._force(force),
                                    self.driver.post_stop_delay, Expectation.DISCONNECTED)

    def restart(self) -> Optional[Verdict]:
        """Disconnect (if needed) and reconnect."""
        self.driver.validate()
        self.stop(force=True)
        return self.start(force=True)

    def toggle(self) -> Optional[Verdict]:
        """Connect if disconnected, otherwise disconnect."""
        self.driver.validate()
        if self.status_engine.is_connected():
            return self.stop(force=True)
        return self.start(force=True)

    def status(self) -> Verdict:
        """Report the current status without asserting anything."""
        return self.status_engine.evaluate()

    def details(self) -> None:
        """Print the public IP information in JSON format."""
        print_plain(self.prober.raw_details().rstrip("\n"))

    def log(self) -> bool:
        return self.driver.log()

    def troubleshoot(self) -> None:
        self.driver.troubleshoot()

    def _pulse_driver(self, command: str) -> PulseDriver:
        if not isinstance(self.driver, PulseDriver):
            raise UserInputError(f"ucsf-vpn {command} requires --method=pulse: {self.config.backend.value}")
        return self.driver

    def open_gui(self) -> None:
        driver = self._pulse_driver("open-gui")
        try:
            driver.open_gui(self._force(None))
        except StateConflictError as e:
            print_warning(str(e))

    def close_gui(self) -> None:
        self._pulse_driver("close-gui").close_gui()


def build_manager(config: SessionConfig, ui: PromptUI = None) -> VPNManager:
    """Wire up the components for the configured backend."""
    tracker = ProcessTracker(config.pid_file)
    prober = ConnectivityProber(config)
    resolver = CredentialResolver(config, ui)
    status = StatusEngine(config, tracker, prober)

    if config.backend is Backend.OPENCONNECT:
        driver = OpenConnectDriver(config, tracker, prober, status, resolver)
    else:
        driver = PulseDriver(config, prober, status, resolver)

    print_debug(f"pid_file: {config.pid_file}")
    print_debug(f"pii_file: {prober.cache_file}")
    return VPNManager(config, driver, status, prober)
