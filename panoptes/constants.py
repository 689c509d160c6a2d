"""Shared constants for Panoptes.

Engine names, operation names, configuration defaults and transport timeouts
used across modules are defined here. No magic strings in other modules:
import from here.
"""

# ─── Database engines ─────────────────────────────────────────────────────────

ENGINE_POSTGRES: str = "postgres"
ENGINE_MYSQL: str = "mysql"
ENGINE_MSSQL: str = "mssql"
ENGINE_SQLITE: str = "sqlite"
ENGINE_ORACLE: str = "oracle"

SUPPORTED_ENGINES: tuple[str, ...] = (
    ENGINE_POSTGRES,
    ENGINE_MYSQL,
    ENGINE_MSSQL,
    ENGINE_SQLITE,
    ENGINE_ORACLE,
)

# ─── SQL classification ──────────────────────────────────────────────────────

DML_KEYWORDS: frozenset[str] = frozenset({"SELECT", "INSERT", "UPDATE", "DELETE"})
DDL_KEYWORDS: frozenset[str] = frozenset({"CREATE", "ALTER", "DROP", "TRUNCATE"})

# Placeholder token substituted for literals in normalized SQL.
NORMALIZED_PLACEHOLDER: str = "?"

# ─── Context ──────────────────────────────────────────────────────────────────

ACTOR_TYPES: frozenset[str] = frozenset({"USER", "SYSTEM", "SERVICE"})
DEFAULT_ACTOR_TYPE: str = "USER"

# ─── Configuration ────────────────────────────────────────────────────────────

VALID_ENVIRONMENTS: tuple[str, ...] = ("dev", "stage", "prod")
VALID_SENSITIVITY_LEVELS: frozenset[str] = frozenset({"NORMAL", "SENSITIVE", "HIGH"})
AUDITABLE_OPERATIONS: frozenset[str] = frozenset({"SELECT", "INSERT", "UPDATE", "DELETE", "DDL"})

DEFAULT_APP_NAME: str = "panoptes-app"
DEFAULT_ENVIRONMENT: str = "dev"
DEFAULT_AUDIT_LOG_PATH: str = "./logs/panoptes.log"

# ─── Transports ───────────────────────────────────────────────────────────────

TRANSPORT_CONSOLE: str = "console"
TRANSPORT_FILE: str = "file"
TRANSPORT_HTTP: str = "http"
TRANSPORT_DATABASE: str = "database"
TRANSPORT_NULL: str = "null"

DEFAULT_AUDIT_TABLE: str = "panoptes_audit_log"

# HTTP transport request timeout (seconds). A slow collector only delays its
# own completion, never the application's query.
HTTP_TRANSPORT_TIMEOUT_S: float = 5.0

# ─── Data capture ─────────────────────────────────────────────────────────────

# Upper bound on rows captured in a before/after snapshot.
SNAPSHOT_ROW_LIMIT: int = 100
