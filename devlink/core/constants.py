"""
Project constants definitions
"""

# ============================================================
# Discovery
# ============================================================

DEFAULT_DISCOVERY_PORT = 8766
DISCOVERY_PATH = "/discover"
DEFAULT_PROBE_TIMEOUT = 2.0
DEFAULT_MAX_CONCURRENT_PROBES = 50

# Wireless first, then wired, then cellular
DEFAULT_INTERFACE_PRIORITY = (
    "en0",
    "wlan*",
    "wl*",
    "en1",
    "eth*",
    "en*",
    "pdp_ip0",
)

# ============================================================
# Agent Channel
# ============================================================

DEFAULT_KEEPALIVE_INTERVAL = 30.0
DEFAULT_CLIENT_TYPE = "visionOS"
DEFAULT_CLIENT_VERSION = "1.0.0"
DEFAULT_CLIENT_CAPABILITIES = ("ai_conversation", "trigger_send", "echo")
DEFAULT_CONVERSATION_SESSION_ID = "current-session"

# ============================================================
# Remote Session
# ============================================================

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 10
DEFAULT_DIRECTORY_CACHE_TTL = 300.0
DEFAULT_OUTPUT_LIMIT = 1000
DEFAULT_PREVIEW_LIMIT = 10 * 1024 * 1024
DIRECTORY_QUERY_COMMAND = "pwd"
# Separates command output from the directory report appended after cd commands
DIRECTORY_MARKER = "__DEVLINK_CWD__"
SHELL_PROMPT = "$"
INITIAL_DIRECTORY = "~"

# ============================================================
# Local State
# ============================================================

DEFAULT_CONFIG_PATH = "~/.devlink/config.toml"
DEFAULT_HOSTS_DIR = "~/.devlink/hosts"
ENV_PREFIX = "DEVLINK_"
