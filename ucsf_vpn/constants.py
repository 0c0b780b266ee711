"""Constants shared across ucsf-vpn."""

APP_NAME = "ucsf-vpn"
VERSION = "5.3.0"

DEFAULT_SERVER = "remote.ucsf.edu"
DEFAULT_PING_SERVER = "9.9.9.9"
IP_INFO_SERVICE = "https://ipinfo.io/json"

# Substring of the ipinfo 'org' field when traffic exits through the VPN
VPN_ORG_SIGNATURE = "AS5653 University of California San Francisco"

REALM_SINGLE = "Single-Factor Pulse Clients"
REALM_DUAL = "Dual-Factor Pulse Clients"

TOKEN_DISABLED = "false"
TOKEN_PROMPT = "prompt"

# Pulse Secure client
PULSE_DEFAULT_PATH = "/usr/local/pulse"
PULSE_WINDOW_NAME = "Pulse Secure"
PULSE_GUI_PROCESS = "pulseUi"
PULSE_CONNECTION_NAME = "UCSF"

# Tab keystrokes needed to reach the first connection's 'Connect' button;
# each further connection adds two more.
PULSE_CONNECT_TAB_OFFSET = 7
PULSE_CONNECT_TABS_PER_ROW = 2
PULSE_NOTIFICATION_TABS = 2
PULSE_POPUP_POLL_INTERVAL = 0.2

OPENCONNECT_KILL_TIMEOUT = 10
