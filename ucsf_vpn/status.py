"""Status checking and reporting for ucsf-vpn."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ucsf_vpn.config import SessionConfig, ValidationCheck
from ucsf_vpn.connectivity import ConnectivityProber
from ucsf_vpn.errors import ConnectionStateError
from ucsf_vpn.process import ProcessTracker
from ucsf_vpn.utils import print_error, print_info, print_plain, print_success


class CheckState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"


class Expectation(Enum):
    """The state a command expects to observe afterwards."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Severity(Enum):
    PLAIN = "plain"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one validation check."""
    check: ValidationCheck
    state: CheckState
    message: str = ""
    severity: Severity = Severity.PLAIN

    @property
    def skipped(self) -> bool:
        return self.state is CheckState.UNKNOWN


@dataclass(frozen=True)
class Verdict:
    """Combined result of all checks; connected if any check says so."""
    checks: Tuple[CheckResult, ...]
    expectation: Optional[Expectation] = None

    @property
    def connected(self) -> bool:
        return any(result.state is CheckState.CONNECTED for result in self.checks)

    @property
    def contradictions(self) -> List[CheckResult]:
        return [result for result in self.checks if result.severity is Severity.ERROR]

    @property
    def summary(self) -> str:
        return "Connected to the VPN" if self.connected else "Not connected to the VPN"

    def state(self, check: ValidationCheck) -> CheckState:
        for result in self.checks:
            if result.check is check:
                return result.state
        return CheckState.UNKNOWN


def severity_for(state: CheckState, expectation: Optional[Expectation]) -> Severity:
    """Error if the observed state contradicts the expectation, OK if it matches."""
    if expectation is None or state is CheckState.UNKNOWN:
        return Severity.PLAIN
    if state.value == expectation.value:
        return Severity.OK
    return Severity.ERROR


_REPORTERS = {
    Severity.PLAIN: print_plain,
    Severity.OK: print_success,
    Severity.ERROR: print_error,
}


class StatusEngine:
    """Combines PID and public-IP checks into a connected/disconnected verdict."""

    def __init__(self, config: SessionConfig, tracker: ProcessTracker, prober: ConnectivityProber,
                 label: str = "openconnect"):
        self.config = config
        self.tracker = tracker
        self.prober = prober
        self.label = label
        self._checks: Dict[ValidationCheck, Callable[[], Tuple[CheckState, str]]] = {
            ValidationCheck.PID: self._check_pid,
            ValidationCheck.IPINFO: self._check_ipinfo,
        }

    def evaluate(self, expectation: Optional[Expectation] = None, report: bool = True) -> Verdict:
        """
        Run all enabled checks and combine them.

        Args:
            expectation: Expected state; a contradiction is reported as an error
            report: Whether to print the outcome of each check

        Raises:
            ConnectionStateError: If any enabled check contradicts the expectation
        """
        print_info(f"validate='{','.join(sorted(c.value for c in self.config.validate))}'")
        results = []
        for check, run_check in self._checks.items():
            if check not in self.config.validate:
                results.append(CheckResult(check, CheckState.UNKNOWN))
                continue
            state, message = run_check()
            results.append(CheckResult(check, state, message, severity_for(state, expectation)))
        verdict = Verdict(tuple(results), expectation)

        if report:
            for result in verdict.checks:
                if not result.skipped:
                    _REPORTERS[result.severity](result.message)
            final = CheckState.CONNECTED if verdict.connected else CheckState.DISCONNECTED
            _REPORTERS[severity_for(final, expectation)](verdict.summary)

        if verdict.contradictions:
            failed = ", ".join(result.check.value for result in verdict.contradictions)
            raise ConnectionStateError(f"Expected to be {expectation.value}, but the '{failed}' check disagrees")
        return verdict

    def is_connected(self) -> bool:
        return self.evaluate(report=False).connected

    def _check_pid(self) -> Tuple[CheckState, str]:
        pid = self.tracker.current_pid()
        if pid is None:
            return CheckState.DISCONNECTED, f"OpenConnect status: No '{self.label}' process running"
        return CheckState.CONNECTED, f"OpenConnect status: '{self.label}' process running (PID={pid})"

    def _check_ipinfo(self) -> Tuple[CheckState, str]:
        connected = self.prober.is_connected_by_identity()
        message = f"Public IP information: {self.prober.identity().describe()}"
        return (CheckState.CONNECTED if connected else CheckState.DISCONNECTED), message
