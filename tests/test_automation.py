"""
Unit tests for Pulse Secure GUI automation
"""
import subprocess
from unittest.mock import patch

import pytest

from ucsf_vpn.automation import (
    Announce,
    AutomationSession,
    ClickWindow,
    LocateWindow,
    MinimizeWindow,
    Pause,
    PressKeys,
    Step,
    TypeText,
    WaitForClose,
    XdotoolWindowDriver,
    build_login_script,
    connect_tab_count,
)
from ucsf_vpn.credentials import Credentials
from ucsf_vpn.errors import AutomationDesyncError

SINGLE = Credentials("alice", "secrets")
DUAL = Credentials("alice", "secrets", "123456")


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def run_script(driver, steps, owner_pid=555):
    clock = FakeClock()
    session = AutomationSession(driver, "Pulse Secure", owner_pid=owner_pid, sleep=clock.sleep, clock=clock)
    session.run(steps)
    return session, clock


class TestConnectTabCount:
    """Test cases for connect_tab_count"""

    @pytest.mark.parametrize("index, tabs", [(0, 7), (1, 9), (3, 13)])
    def test_tab_count(self, index, tabs):
        assert connect_tab_count(index) == tabs


class TestBuildLoginScript:
    """Test cases for build_login_script"""

    def test_single_factor_script(self):
        steps = build_login_script(1, SINGLE, dual_factor=False)
        assert steps == [
            Pause(1.0),
            LocateWindow("main", owned=True),
            Announce("selecting connection"),
            ClickWindow("main"),
            PressKeys("main", ("Tab",), repeat=9),
            PressKeys("main", ("Return",)),
            MinimizeWindow("main"),
            Pause(2.0),
            LocateWindow("popup", exclude=("main",), error="Failed to locate the Pulse Secure GUI popup window"),
            Announce("skipping UCSF notification popup window (--notification if it exists)"),
            Announce("entering user credentials and selecting realm"),
            TypeText("popup", "alice"),
            PressKeys("popup", ("Tab",)),
            TypeText("popup", "secrets"),
            PressKeys("popup", ("Tab", "Tab", "Return")),
            WaitForClose("popup"),
            Announce("connecting ..."),
        ]

    def test_dual_factor_selects_second_realm(self):
        steps = build_login_script(0, DUAL, dual_factor=True)
        assert PressKeys("popup", ("Tab", "Down", "Tab", "Return")) in steps
        assert TypeText("token", "123456") in steps
        assert WaitForClose("token") in steps
        assert WaitForClose("popup") not in steps

    def test_notification_popup(self):
        steps = build_login_script(0, SINGLE, dual_factor=False, notification=True)
        start = steps.index(PressKeys("popup", ("Tab",), repeat=2))
        assert steps[start + 1] == PressKeys("popup", ("Return",))
        assert steps[start + 2] == Pause(2.0)

    def test_speed_scales_pauses(self):
        steps = build_login_script(0, DUAL, dual_factor=True, speed=2.0)
        pauses = [step.seconds for step in steps if isinstance(step, Pause)]
        assert pauses == [0.5, 1.0, 0.5]

    def test_popup_timeout(self):
        steps = build_login_script(0, SINGLE, dual_factor=False, popup_timeout=30.0)
        assert WaitForClose("popup", timeout=30.0) in steps

    def test_secrets_not_in_repr(self):
        steps = build_login_script(0, DUAL, dual_factor=True)
        text = repr(steps)
        assert "secrets" not in text
        assert "123456" not in text


class TestAutomationSession:
    """Test cases for running a login script"""

    def test_single_factor_login(self, fake_window_driver, capsys):
        driver = fake_window_driver(listings=[["100", "200"], ["100", "200"], ["100"]])
        session, clock = run_script(driver, build_login_script(1, SINGLE, dual_factor=False))
        assert session.windows == {"main": "100", "popup": "200"}
        assert driver.of_kind("press") == [
            ("press", "100", ("Tab",), 9),
            ("press", "100", ("Return",), 1),
            ("press", "200", ("Tab",), 1),
            ("press", "200", ("Tab", "Tab", "Return"), 1),
        ]
        assert driver.of_kind("type") == [("type", "200", "alice"), ("type", "200", "secrets")]
        assert driver.of_kind("click") == [("click", "100")]
        assert driver.of_kind("minimize") == [("minimize", "100")]
        assert ("search", 555) in driver.actions
        assert clock.sleeps == [1.0, 2.0, 0.2]
        output = capsys.readouterr().out
        assert " 1. selecting connection" in output
        assert " 4. connecting ..." in output
        assert "secrets" not in output

    def test_dual_factor_login(self, fake_window_driver):
        driver = fake_window_driver(listings=[["100", "200"], ["100", "300"], ["100"]])
        session, _ = run_script(driver, build_login_script(0, DUAL, dual_factor=True))
        assert session.windows["token"] == "300"
        assert ("type", "300", "123456") in driver.of_kind("type")
        assert driver.of_kind("press")[-1] == ("press", "300", ("Return",), 1)

    def test_missing_main_window(self, fake_window_driver):
        driver = fake_window_driver(owned=[])
        with pytest.raises(AutomationDesyncError, match="Failed to locate the Pulse Secure GUI window"):
            run_script(driver, build_login_script(0, SINGLE, dual_factor=False))
        assert driver.of_kind("press") == []

    def test_missing_popup_window(self, fake_window_driver):
        driver = fake_window_driver(listings=[["100"]])
        with pytest.raises(AutomationDesyncError, match="popup window"):
            run_script(driver, build_login_script(0, SINGLE, dual_factor=False))
        assert driver.of_kind("type") == []

    def test_last_candidate_is_used(self, fake_window_driver):
        driver = fake_window_driver(listings=[["100", "200", "201"]])
        session, _ = run_script(driver, [LocateWindow("main", owned=True), LocateWindow("popup", exclude=("main",))])
        assert session.windows["popup"] == "201"

    def test_unlocated_slot(self, fake_window_driver):
        with pytest.raises(AutomationDesyncError):
            run_script(fake_window_driver(), [PressKeys("popup", ("Return",))])

    def test_step_requires_execute(self):
        with pytest.raises(TypeError):
            Step()

        class Incomplete(Step):
            pass

        with pytest.raises(TypeError):
            Incomplete()


class TestWaitForClose:
    """Test cases for the WaitForClose step"""

    def test_waits_until_closed(self, fake_window_driver):
        listings = [["100", "200"]] * 5 + [["100"]]
        driver = fake_window_driver(listings=listings)
        steps = [LocateWindow("main", owned=True), LocateWindow("popup", exclude=("main",)), WaitForClose("popup")]
        _, clock = run_script(driver, steps)
        assert clock.sleeps == [0.2] * 4

    def test_timeout(self, fake_window_driver):
        driver = fake_window_driver(listings=[["100", "200"]])
        steps = [LocateWindow("main", owned=True), LocateWindow("popup", exclude=("main",)),
                 WaitForClose("popup", interval=1.0, timeout=3.0)]
        with pytest.raises(AutomationDesyncError, match="did not close within 3 seconds"):
            run_script(driver, steps)


class TestXdotoolWindowDriver:
    """Test cases for XdotoolWindowDriver"""

    @patch("ucsf_vpn.automation.run_command")
    def test_search(self, mock_run):
        mock_run.return_value = (True, subprocess.CompletedProcess([], 0, stdout="123\n456\n"))
        assert XdotoolWindowDriver().search("Pulse Secure", pid=555) == ["123", "456"]
        assert mock_run.call_args[0][0] == [
            "xdotool", "search", "--all", "--onlyvisible", "--pid", "555", "--name", "Pulse Secure"
        ]

    @patch("ucsf_vpn.automation.run_command")
    def test_search_without_match(self, mock_run):
        mock_run.return_value = (False, subprocess.CalledProcessError(1, "xdotool"))
        assert XdotoolWindowDriver().search("Pulse Secure") == []

    @patch("ucsf_vpn.automation.run_command")
    def test_press_with_repeat(self, mock_run):
        mock_run.return_value = (True, None)
        XdotoolWindowDriver().press("123", ("Tab",), repeat=9)
        assert mock_run.call_args[0][0] == [
            "xdotool", "windowactivate", "--sync", "123", "key", "--delay", "50", "--repeat", "9", "Tab"
        ]

    @patch("ucsf_vpn.automation.run_command")
    def test_type_text_uses_stdin(self, mock_run):
        mock_run.return_value = (True, None)
        XdotoolWindowDriver().type_text("123", "secrets")
        assert "secrets" not in mock_run.call_args[0][0]
        assert mock_run.call_args[1]["input"] == "secrets"
