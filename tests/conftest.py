"""Shared fixtures for ucsf-vpn tests."""

import pytest

from ucsf_vpn.config import ConfigManager
from ucsf_vpn.connectivity import NetworkIdentity
from ucsf_vpn.utils import configure_output

UCSF_ORG = "AS5653 University of California San Francisco"


@pytest.fixture(autouse=True)
def reset_output():
    """Restore default verbosity after every test."""
    yield
    configure_output()


@pytest.fixture
def environ(tmp_path):
    """A minimal environment pointing all files into tmp_path."""
    return {
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "NETRC": str(tmp_path / "netrc"),
    }


@pytest.fixture
def make_config(environ):
    """Factory for SessionConfig objects built like the CLI builds them."""
    def _make(**overrides):
        return ConfigManager(environ).build(overrides)
    return _make


@pytest.fixture
def vpn_identity():
    raw = '{"ip": "128.218.42.7", "hostname": "vpn.ucsf.edu", "org": "%s"}' % UCSF_ORG
    return NetworkIdentity.parse(raw)


@pytest.fixture
def home_identity():
    raw = '{"ip": "73.1.2.3", "org": "AS7922 Comcast Cable Communications, LLC"}'
    return NetworkIdentity.parse(raw)


class FakeWindowDriver:
    """
    Stand-in for XdotoolWindowDriver.

    `owned` is returned for searches restricted to the GUI process; searches
    without a pid return successive entries of `listings` (the last one
    repeats).
    """

    executable = "xdotool"

    def __init__(self, owned=("100",), listings=(("100", "200"),)):
        self.owned = list(owned)
        self.listings = [list(listing) for listing in listings]
        self.actions = []

    def search(self, name, pid=None):
        self.actions.append(("search", pid))
        if pid is not None:
            return list(self.owned)
        if len(self.listings) > 1:
            return self.listings.pop(0)
        return list(self.listings[0])

    def click(self, wid):
        self.actions.append(("click", wid))
        return True

    def press(self, wid, keys, repeat=1):
        self.actions.append(("press", wid, tuple(keys), repeat))
        return True

    def type_text(self, wid, text):
        self.actions.append(("type", wid, text))
        return True

    def minimize(self, wid):
        self.actions.append(("minimize", wid))
        return True

    def kill_windows(self, name, pid):
        self.actions.append(("kill", pid))
        return True

    def of_kind(self, kind):
        return [action for action in self.actions if action[0] == kind]


@pytest.fixture
def fake_window_driver():
    return FakeWindowDriver
