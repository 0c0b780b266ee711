"""Resolution of username, password and 2FA token."""

import netrc
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ucsf_vpn.config import Realm, SessionConfig
from ucsf_vpn.constants import DEFAULT_SERVER, TOKEN_DISABLED, TOKEN_PROMPT
from ucsf_vpn.errors import UserInputError, VPNEnvironmentError
from ucsf_vpn.tokens import TokenKind, classify_token, describe_token
from ucsf_vpn.ui import PromptUI
from ucsf_vpn.utils import print_debug, print_plain


@dataclass(frozen=True)
class Credentials:
    """Login credentials; held in memory only."""
    username: str
    password: Optional[str] = field(default=None, repr=False)
    token: str = TOKEN_DISABLED

    @property
    def token_kind(self) -> TokenKind:
        return classify_token(self.token)

    @property
    def uses_token(self) -> bool:
        return self.token_kind is not TokenKind.DISABLED


class CredentialResolver:
    """
    Looks up credentials from explicit values, a .netrc file, or prompts.

    Explicit values always win; the .netrc entry for the server (or the
    default server) comes next; anything still missing is prompted for.
    """

    def __init__(self, config: SessionConfig, ui: PromptUI = None):
        self.config = config
        self.ui = ui or PromptUI()

    @property
    def netrc_machines(self) -> List[str]:
        if self.config.server == DEFAULT_SERVER:
            return [self.config.server]
        return [self.config.server, DEFAULT_SERVER]

    def resolve(self, explicit_user: Optional[str] = None, explicit_pwd: Optional[str] = None,
                explicit_token: Optional[str] = None, realm: Realm = Realm.SINGLE) -> Credentials:
        """Return complete credentials for the given realm."""
        user, pwd = explicit_user, explicit_pwd
        if not user or not pwd:
            netrc_user, netrc_pwd = self.read_netrc()
            if not user:
                user = netrc_user
            if not pwd and netrc_user == user:
                pwd = netrc_pwd

        if not user:
            user = self.ui.prompt_username()
        print_debug(f"- user={user}")

        if not pwd:
            pwd = self.ui.prompt_password()
            print_plain("<password>")
        print_debug(f"- pwd={'<hidden>' if pwd else '<missing>'}")

        token = TOKEN_DISABLED
        if realm.dual_factor:
            token = self.resolve_token(explicit_token)

        return Credentials(username=user, password=pwd, token=token)

    def resolve_token(self, token: Optional[str]) -> str:
        """Return the token, prompting for it if requested or missing."""
        if token in (None, "", TOKEN_PROMPT, "true"):
            print_debug("PROMPT: Asking user to enter one-time token:")
            token = self.ui.prompt_token()
            print_plain(f"<{classify_token(token).value}>")
        kind = classify_token(token)
        if kind is TokenKind.UNKNOWN:
            raise UserInputError(
                "Not a valid token ('push', 'phone', 'sms', 6 or 7 digits, or 44-letter YubiKey sequence)"
            )
        print_debug(f"- token={describe_token(token)}")
        return token

    def read_netrc(self) -> Tuple[Optional[str], Optional[str]]:
        """Return (login, password) from the .netrc file, or (None, None)."""
        rcfile = self.config.netrc_file
        if rcfile is None or not Path(rcfile).is_file():
            print_debug(f"No .netrc file: {rcfile}")
            return None, None
        print_debug(f"Detected .netrc file: {rcfile}")
        ensure_private(rcfile)

        try:
            entries = netrc.netrc(str(rcfile))
        except (netrc.NetrcParseError, OSError) as e:
            raise VPNEnvironmentError(f"Failed to parse {rcfile}: {e}") from e

        for machine in self.netrc_machines:
            # Exact machine entries only; the "default" entry is ignored
            auth = entries.hosts.get(machine)
            if auth:
                login, _, password = auth
                print_debug(f"- found: {machine}")
                return login or None, password or None
        print_debug(f"- no such machine: {', '.join(self.netrc_machines)}")
        return None, None


def ensure_private(path: Path) -> None:
    """Remove group/other permissions from a file (like 'chmod go-rwx')."""
    mode = stat.S_IMODE(os.stat(path).st_mode)
    if mode & 0o077 == 0:
        return
    try:
        os.chmod(path, mode & ~0o077)
    except OSError as e:
        raise VPNEnvironmentError(
            f"Failed to restrict file permissions on {path}: {e}",
            hint=f"Run 'chmod go-rwx {path}' manually"
        ) from e
    print_debug(f"Restricted file permissions: {path}")
