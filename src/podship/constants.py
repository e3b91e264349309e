"""Fixed defaults shared across podship services."""

DEFAULT_CONFIG_FILE = "deploy.yaml"
BUILD_DIR = "build"

DEFAULT_ARCH = "amd64"
DEFAULT_SSH_PORT = 22
DEFAULT_LDFLAGS = "-s -w -X 'main.buildVersion={{.Version}}' -X 'main.buildDate={{.Date}}'"
DEFAULT_ARTIFACTS = ("Dockerfile.vps", "migrations/", "files/")
DEFAULT_DOCKERFILE = "Dockerfile.vps"
DRY_RUN_VERSION = "v0.0.0-dryrun"

SSH_CONTROL_PERSIST = "5m"

# rsync exit codes for socket, I/O timeout and connection failures.
TRANSFER_RETRY_RETURNCODES = (10, 12, 30, 35, 255)
TRANSFER_RETRY_COUNT = 2
TRANSFER_RETRY_BACKOFF_SECONDS = 3.0

BACKUP_SUFFIX = ".bak"
PARTIAL_SUFFIX = ".partial"
SQLITE_SIDE_FILES = ("-wal", "-shm")

QUADLET_DIR = ".config/containers/systemd"
SYSTEMD_WANTS_DIR = ".config/systemd/user/default.target.wants"

# Labels
ROUTER_PRIORITY = 100
DEFAULT_ENTRYPOINT = "websecure"
DEFAULT_CERT_RESOLVER = "myresolver"
DEFAULT_INTERNAL_PORT = 8080

# Reverse proxy
TRAEFIK_SERVICE = "traefik"
TRAEFIK_DIR = "traefik"
TRAEFIK_IMAGE = "docker.io/library/traefik"
DEFAULT_TRAEFIK_NETWORK = "traefik-net"
DEFAULT_TRAEFIK_VERSION = "v3.0"
TRAEFIK_RELEASES_URL = "https://api.github.com/repos/traefik/traefik/releases/latest"
RELEASE_LOOKUP_TIMEOUT = 10

# Verification
SETTLE_DELAY_SECONDS = 2.0
HEALTH_ATTEMPTS = 15
# systemctl is-active exit codes meaning the unit is not running (inactive or failed, unknown unit).
SERVICE_STOPPED_RETURNCODES = (3, 4)
ACTIVE_PENDING_STATES = ("activating", "reloading")
HEALTH_INTERVAL_SECONDS = 2.0
HEALTH_REQUEST_TIMEOUT = 5.0
DIAGNOSTIC_LOG_LINES = 50

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_ROLLED_BACK = 2
EXIT_FATAL = 3
