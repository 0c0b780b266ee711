"""Configuration management for ucsf-vpn."""

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from ucsf_vpn.constants import (
    DEFAULT_PING_SERVER,
    DEFAULT_SERVER,
    IP_INFO_SERVICE,
    PULSE_DEFAULT_PATH,
    REALM_DUAL,
    REALM_SINGLE,
    VPN_ORG_SIGNATURE,
)
from ucsf_vpn.errors import UserInputError
from ucsf_vpn.tokens import normalize_token
from ucsf_vpn.utils import xdg_config_path


class Backend(Enum):
    """The VPN client used to connect."""
    OPENCONNECT = "openconnect"
    PULSE = "pulse"


class Realm(Enum):
    """Authentication group on the VPN server."""
    SINGLE = REALM_SINGLE
    DUAL = REALM_DUAL

    @property
    def dual_factor(self) -> bool:
        return self is Realm.DUAL


class ValidationCheck(Enum):
    """Ways of deciding whether the VPN is connected."""
    PID = "pid"
    IPINFO = "ipinfo"


REALM_ALIASES = {"single": Realm.SINGLE, "dual": Realm.DUAL}

ALLOWED_VALIDATION = {
    Backend.OPENCONNECT: ("ipinfo", "pid", "pid,ipinfo"),
    Backend.PULSE: ("ipinfo",),
}

DEFAULT_VALIDATION = {
    Backend.OPENCONNECT: "pid,ipinfo",
    Backend.PULSE: "ipinfo",
}


@dataclass(frozen=True)
class SessionConfig:
    """Settings for one invocation. Built once, never mutated."""
    backend: Backend
    server: str
    realm: Realm
    url: str
    validate: FrozenSet[ValidationCheck]
    config_dir: Path
    pid_file: Path
    speed: float = 1.0
    force: bool = False
    dry_run: bool = False
    extras: Tuple[str, ...] = ()
    gui: bool = True
    notification: bool = False
    verbose: bool = False
    debug: bool = False
    theme: str = "cli"
    user: Optional[str] = None
    password: Optional[str] = None
    token: str = "false"
    ping_servers: Tuple[str, ...] = (DEFAULT_PING_SERVER,)
    ip_info_service: str = IP_INFO_SERVICE
    vpn_org_signature: str = VPN_ORG_SIGNATURE
    netrc_file: Optional[Path] = None
    pulse_path: Path = Path(PULSE_DEFAULT_PATH)
    popup_timeout: Optional[float] = None

    @property
    def gui_automation(self) -> bool:
        return self.backend is Backend.PULSE and self.gui

    def scaled(self, seconds: float) -> float:
        """Scale a GUI wait by the speed factor."""
        return seconds / self.speed


class ConfigManager:
    """Builds a SessionConfig from defaults, environment and CLI options."""

    # Default values used when neither the environment nor the CLI give one
    DEFAULT_CONFIG = {
        "method": "openconnect",
        "server": DEFAULT_SERVER,
        "realm": None,
        "url": None,
        "validate": None,
        "token": None,
        "theme": "cli",
        "speed": "1.0",
        "extras": "",
        "ping_servers": DEFAULT_PING_SERVER,
        "gui": True,
        "notification": False,
        "force": False,
        "dry_run": False,
        "verbose": False,
        "debug": False,
        "user": None,
        "password": None,
        "popup_timeout": None,
    }

    # Environment variables that override the defaults
    ENVIRONMENT = {
        "method": "UCSF_VPN_METHOD",
        "server": "UCSF_VPN_SERVER",
        "token": "UCSF_VPN_TOKEN",
        "theme": "UCSF_VPN_THEME",
        "validate": "UCSF_VPN_VALIDATE",
        "ping_servers": "UCSF_VPN_PING_SERVER",
        "extras": "UCSF_VPN_EXTRAS",
    }

    def __init__(self, environ: Mapping[str, str] = None):
        """Initialize the configuration manager."""
        self.environ = os.environ if environ is None else environ

    def load_defaults(self) -> Dict[str, Any]:
        """Return the defaults with environment overrides applied."""
        values = dict(self.DEFAULT_CONFIG)
        for key, variable in self.ENVIRONMENT.items():
            value = self.environ.get(variable)
            if value:
                values[key] = value
        return values

    def build(self, overrides: Mapping[str, Any] = None) -> SessionConfig:
        """
        Create a validated SessionConfig.

        Args:
            overrides: Option values from the command line; None values are ignored

        Raises:
            UserInputError: If any option value is invalid
        """
        overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        values = self.load_defaults()
        values.update(overrides)

        backend = self._parse_backend(values["method"])
        gui = bool(values["gui"])
        realm = self._parse_realm(values["realm"], gui_automation=backend is Backend.PULSE and gui)
        validate = self._parse_validate(values["validate"], backend)
        speed = self._parse_speed(values["speed"])
        theme = values["theme"]
        if theme not in ("cli", "none"):
            raise UserInputError(f"Unknown --theme value: '{theme}'")

        token = normalize_token(values["token"], realm.dual_factor, explicit="token" in overrides)

        server = values["server"]
        url = values["url"] or f"https://{server}/pulse"

        extras = values["extras"]
        if isinstance(extras, str):
            extras = tuple(extras.split())

        popup_timeout = values["popup_timeout"]
        if popup_timeout is not None:
            popup_timeout = float(popup_timeout)
            if popup_timeout <= 0:
                raise UserInputError(f"Invalid --popup-timeout argument: '{popup_timeout}'")

        netrc_file = self.environ.get("NETRC")
        config_dir = Path(xdg_config_path(self.environ))

        return SessionConfig(
            backend=backend,
            server=server,
            realm=realm,
            url=url,
            validate=validate,
            config_dir=config_dir,
            pid_file=config_dir / "openconnect.pid",
            speed=speed,
            force=bool(values["force"]),
            dry_run=bool(values["dry_run"]),
            extras=tuple(extras),
            gui=gui,
            notification=bool(values["notification"]),
            verbose=bool(values["verbose"]) or bool(values["debug"]),
            debug=bool(values["debug"]),
            theme=theme,
            user=values["user"],
            password=values["password"],
            token=token,
            ping_servers=tuple(str(values["ping_servers"]).split()),
            netrc_file=Path(netrc_file) if netrc_file else Path.home() / ".netrc",
            pulse_path=Path(self.environ.get("PULSEPATH") or PULSE_DEFAULT_PATH),
            popup_timeout=popup_timeout,
        )

    def _parse_backend(self, method: str) -> Backend:
        try:
            return Backend(method)
        except ValueError:
            raise UserInputError(f"Unknown value on option --method: '{method}'") from None

    def _parse_realm(self, realm: Optional[str], gui_automation: bool) -> Realm:
        if not realm:
            return Realm.DUAL if gui_automation else Realm.SINGLE
        if realm in REALM_ALIASES:
            return REALM_ALIASES[realm]
        try:
            return Realm(realm)
        except ValueError:
            raise UserInputError(f"Unknown value on option --realm: '{realm}'") from None

    def _parse_validate(self, validate: Optional[str], backend: Backend) -> FrozenSet[ValidationCheck]:
        if not validate:
            validate = DEFAULT_VALIDATION[backend]
        elif validate not in ALLOWED_VALIDATION[backend]:
            raise UserInputError(f"Unknown --validate value: '{validate}'")
        return frozenset(ValidationCheck(name) for name in validate.split(","))

    def _parse_speed(self, speed: Any) -> float:
        text = str(speed)
        if not re.fullmatch(r"[0-9]+[.0-9]*", text):
            raise UserInputError(f"Invalid --speed argument: '{text}'")
        try:
            value = float(text)
        except ValueError:
            raise UserInputError(f"Invalid --speed argument: '{text}'") from None
        if value <= 0:
            raise UserInputError(f"Invalid --speed argument: '{text}'")
        return value
