"""Internet reachability and public network identity."""

import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ucsf_vpn.config import SessionConfig
from ucsf_vpn.errors import TransientNetworkError
from ucsf_vpn.utils import print_debug, print_info, run_command


@dataclass(frozen=True)
class NetworkIdentity:
    """Public IP information as reported by the lookup service."""
    ip: Optional[str]
    hostname: Optional[str]
    org: Optional[str]
    raw: str

    @classmethod
    def parse(cls, raw: str) -> "NetworkIdentity":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("identity document is not a JSON object")
        return cls(ip=data.get("ip"), hostname=data.get("hostname"), org=data.get("org"), raw=raw)

    def describe(self) -> str:
        return f"ip={self.ip or ''}, hostname='{self.hostname or ''}', org='{self.org or ''}'"


class ConnectivityProber:
    """
    Checks internet reachability and looks up the public network identity.

    The identity is cached in a session-scoped file until `invalidate()` is
    called. Callers invalidate it around every connect/disconnect.
    """

    def __init__(self, config: SessionConfig, cache_file: Path = None):
        self.config = config
        if cache_file is None:
            cache_file = Path(config.config_dir) / f"{uuid.uuid4().hex[:10]}-ipinfo.json"
        self.cache_file = Path(cache_file)

    def is_online(self) -> bool:
        """Ping each configured server once; True on the first reply."""
        for server in self.config.ping_servers:
            print_info(f"Pinging '{server}' once")
            success, _ = run_command(["ping", "-c", "1", "-W", "1", server], check=True, silent=True)
            if success:
                return True
        return False

    def raw_details(self) -> str:
        """Return the raw identity document, fetching it if not cached."""
        if not self.cache_file.is_file():
            self._fetch()
        return self.cache_file.read_text()

    def identity(self) -> NetworkIdentity:
        """Return the (possibly cached) public network identity."""
        raw = self.raw_details()
        try:
            return NetworkIdentity.parse(raw)
        except ValueError as e:
            self.invalidate()
            raise TransientNetworkError(f"Failed to parse public IP information: {e}") from e

    def is_connected_by_identity(self) -> bool:
        org = self.identity().org or ""
        return self.config.vpn_org_signature in org

    def invalidate(self) -> None:
        """Remove the cached identity so that the next lookup is fresh."""
        if self.cache_file.is_file():
            print_debug(f"Removing file: {self.cache_file}")
            self.cache_file.unlink()

    def _fetch(self) -> None:
        if not self.is_online():
            raise TransientNetworkError("Internet connection is not working")
        print_info("Verified that internet connection works")
        service = self.config.ip_info_service
        print_info(f"Getting public IP (from {service})")
        success, result = run_command(["curl", "--silent", service], check=True, silent=True)
        if not success or not result.stdout.strip():
            raise TransientNetworkError(f"Failed to get public IP (from {service})")
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        self.cache_file.write_text(result.stdout)
        print_debug(f"Public connection information: {' '.join(result.stdout.split())}")
