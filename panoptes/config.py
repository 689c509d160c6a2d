"""Process-wide configuration store for Panoptes.

``init_config()`` is called exactly once per process (a second call raises
ConfigurationError and leaves the first configuration untouched). After init,
table and operation rules may be patched with ``set_table_rules()`` and
``set_operation_rules()``. ``get_config()`` always returns an isolated deep
copy so callers cannot mutate live state; the database client handle is the
one exception and is shared by reference.

Merge rules applied by ``init_config()`` onto the defaults:
  - top-level scalars (app_name, environment): override replaces default
  - transports: ``enabled`` and ``database`` replace; ``file`` and ``http`` are
    merged key by key onto their defaults
  - table_rules, operation_rules: merged key by key

Config files (``load_config_file``) are YAML mappings using the same keys:

    app_name: billing-api
    environment: prod
    transports:
      enabled: [console, file]
      file:
        path: /var/log/panoptes/audit.log
    table_rules:
      payments:
        audited_operations: [INSERT, UPDATE, DELETE]
        sensitivity_level: HIGH
    operation_rules:
      audit_select: false

Search order for the config file:
  1. ``path`` argument (if provided)
  2. PANOPTES_CONFIG environment variable (if set)
  3. ``./panoptes.yaml``
  4. ``~/.panoptes/config.yaml``

Environment variable overrides (applied after the file is parsed):
  PANOPTES_APP_NAME, PANOPTES_ENVIRONMENT
"""

from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from panoptes.constants import (
    AUDITABLE_OPERATIONS,
    DEFAULT_APP_NAME,
    DEFAULT_AUDIT_LOG_PATH,
    DEFAULT_AUDIT_TABLE,
    DEFAULT_ENVIRONMENT,
    HTTP_TRANSPORT_TIMEOUT_S,
    TRANSPORT_CONSOLE,
    VALID_ENVIRONMENTS,
    VALID_SENSITIVITY_LEVELS,
)
from panoptes.errors import ConfigurationError
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATHS = [
    "./panoptes.yaml",
    os.path.expanduser("~/.panoptes/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class FileTransportConfig:
    """Append-only JSON-lines file sink."""

    path: str = DEFAULT_AUDIT_LOG_PATH


@dataclass
class HttpTransportConfig:
    """HTTP collector sink. An empty endpoint disables delivery."""

    endpoint: str = ""
    timeout_s: float = HTTP_TRANSPORT_TIMEOUT_S
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class DatabaseTransportConfig:
    """Storage sink writing one row per event into an audit table.

    client:            async driver connection used for the audit writes
    engine:            postgres | mysql | mssql | sqlite | oracle
    table_name:        audit table name
    auto_create_table: probe for the table once per client and create it if absent
    """

    client: Any = None
    engine: Optional[str] = None
    table_name: str = DEFAULT_AUDIT_TABLE
    auto_create_table: bool = False


@dataclass
class TransportsConfig:
    enabled: list[str] = field(default_factory=lambda: [TRANSPORT_CONSOLE])
    file: FileTransportConfig = field(default_factory=FileTransportConfig)
    http: HttpTransportConfig = field(default_factory=HttpTransportConfig)
    database: Optional[DatabaseTransportConfig] = None


@dataclass
class TableRules:
    """Per-table audit rules.

    enabled=False silences the table entirely. A non-empty
    audited_operations list restricts auditing to those operations.
    sensitivity_level is informational; transports may route on it.
    """

    enabled: bool = True
    audited_operations: Optional[list[str]] = None
    sensitivity_level: Optional[str] = None


@dataclass
class OperationRules:
    """Global per-operation switches. False vetoes the whole operation class."""

    audit_select: bool = True
    audit_insert: bool = True
    audit_update: bool = True
    audit_delete: bool = True
    audit_ddl: bool = True


@dataclass
class PanoptesConfig:
    """Root configuration object. Built by ``init_config()``, read via ``get_config()``."""

    app_name: str = DEFAULT_APP_NAME
    environment: str = DEFAULT_ENVIRONMENT
    transports: TransportsConfig = field(default_factory=TransportsConfig)
    table_rules: dict[str, TableRules] = field(default_factory=dict)
    operation_rules: OperationRules = field(default_factory=OperationRules)


# ─── Store state ──────────────────────────────────────────────────────────────

_current_config: PanoptesConfig = PanoptesConfig()
_initialized: bool = False


def init_config(user_config: Optional[Mapping[str, Any]] = None) -> None:
    """Merge ``user_config`` onto the defaults, validate, and install it.

    Raises:
        ConfigurationError: If already initialized, if app_name is missing or
            not a string, if environment is not dev/stage/prod, if
            transports.enabled is not a list, or if a rule entry is malformed.
    """
    global _current_config, _initialized

    if _initialized:
        raise ConfigurationError(
            "Panoptes has already been initialized. init_config() cannot be called twice."
        )

    merged = _merge_config(user_config or {})
    _current_config = merged
    _initialized = True

    logger.info(
        "panoptes_config_initialized",
        app_name=merged.app_name,
        environment=merged.environment,
        transports=list(merged.transports.enabled),
        table_rules=sorted(merged.table_rules),
    )


def get_config() -> PanoptesConfig:
    """Return an isolated deep copy of the live configuration."""
    memo: dict[int, Any] = {}
    database = _current_config.transports.database
    if database is not None and database.client is not None:
        # Connections are neither copyable nor meant to be: share the handle.
        memo[id(database.client)] = database.client
    return copy.deepcopy(_current_config, memo)


def is_initialized() -> bool:
    return _initialized


def set_table_rules(table_rules: Mapping[str, Any]) -> None:
    """Add or replace table rules by table name.

    Existing entries for the same table are replaced wholesale, not merged.
    """
    if not _initialized:
        raise ConfigurationError("Cannot call set_table_rules() before init_config().")
    if not isinstance(table_rules, Mapping):
        raise ConfigurationError("set_table_rules() expects a mapping of table name to rules.")

    updated = dict(_current_config.table_rules)
    for table, rules in table_rules.items():
        updated[str(table)] = _parse_table_rules(str(table), rules)
    _current_config.table_rules = updated
    logger.info("panoptes_table_rules_updated", tables=sorted(table_rules))


def set_operation_rules(operation_rules: Mapping[str, Any]) -> None:
    """Merge a partial set of operation switches into the live configuration."""
    if not _initialized:
        raise ConfigurationError("Cannot call set_operation_rules() before init_config().")
    if not isinstance(operation_rules, Mapping):
        raise ConfigurationError("set_operation_rules() expects a mapping.")

    _current_config.operation_rules = _parse_operation_rules(
        operation_rules, base=_current_config.operation_rules
    )
    logger.info("panoptes_operation_rules_updated", **dict(operation_rules))


def reset_config() -> None:
    """Return the store to its pristine, uninitialized state.

    Intended for test suites; production code initializes once per process.
    """
    global _current_config, _initialized
    _current_config = PanoptesConfig()
    _initialized = False


# ─── Merge + validation ───────────────────────────────────────────────────────


def _merge_config(raw: Mapping[str, Any]) -> PanoptesConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Invalid configuration: expected a mapping.")

    app_name = raw.get("app_name", DEFAULT_APP_NAME)
    if not app_name or not isinstance(app_name, str):
        raise ConfigurationError(
            "Invalid configuration: 'app_name' is required and must be a string."
        )

    environment = raw.get("environment", DEFAULT_ENVIRONMENT)
    if environment not in VALID_ENVIRONMENTS:
        raise ConfigurationError(
            f"Invalid configuration: 'environment' must be one of {', '.join(VALID_ENVIRONMENTS)}."
        )

    transports = _parse_transports(raw.get("transports"))

    table_rules_raw = raw.get("table_rules") or {}
    if not isinstance(table_rules_raw, Mapping):
        raise ConfigurationError("Invalid configuration: 'table_rules' must be a mapping.")
    table_rules = {
        str(table): _parse_table_rules(str(table), rules)
        for table, rules in table_rules_raw.items()
    }

    operation_rules_raw = raw.get("operation_rules") or {}
    if not isinstance(operation_rules_raw, Mapping):
        raise ConfigurationError("Invalid configuration: 'operation_rules' must be a mapping.")
    operation_rules = _parse_operation_rules(operation_rules_raw, base=OperationRules())

    return PanoptesConfig(
        app_name=app_name,
        environment=environment,
        transports=transports,
        table_rules=table_rules,
        operation_rules=operation_rules,
    )


def _parse_transports(raw: Any) -> TransportsConfig:
    defaults = TransportsConfig()
    if raw is None:
        return defaults
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Invalid configuration: 'transports' must be a mapping.")

    enabled = raw.get("enabled", defaults.enabled)
    if not isinstance(enabled, list):
        raise ConfigurationError(
            "Invalid configuration: 'transports.enabled' is required and must be a list, "
            "for example ['console']."
        )

    file_raw = raw.get("file") or {}
    http_raw = raw.get("http") or {}
    file_config = FileTransportConfig(path=file_raw.get("path", defaults.file.path))
    http_config = HttpTransportConfig(
        endpoint=http_raw.get("endpoint", defaults.http.endpoint),
        timeout_s=http_raw.get("timeout_s", defaults.http.timeout_s),
        headers=dict(http_raw.get("headers") or {}),
    )

    database_raw = raw.get("database")
    database_config: Optional[DatabaseTransportConfig] = None
    if isinstance(database_raw, DatabaseTransportConfig):
        database_config = database_raw
    elif isinstance(database_raw, Mapping):
        database_config = DatabaseTransportConfig(
            client=database_raw.get("client"),
            engine=database_raw.get("engine"),
            table_name=database_raw.get("table_name", DEFAULT_AUDIT_TABLE),
            auto_create_table=bool(database_raw.get("auto_create_table", False)),
        )
    elif database_raw is not None:
        raise ConfigurationError("Invalid configuration: 'transports.database' must be a mapping.")

    return TransportsConfig(
        enabled=list(enabled),
        file=file_config,
        http=http_config,
        database=database_config,
    )


def _parse_table_rules(table: str, raw: Any) -> TableRules:
    if isinstance(raw, TableRules):
        raw = vars(raw)
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Invalid table rules for '{table}': expected a mapping.")

    operations = raw.get("audited_operations")
    if operations is not None:
        if not isinstance(operations, (list, tuple)):
            raise ConfigurationError(
                f"Invalid table rules for '{table}': 'audited_operations' must be a list."
            )
        operations = [str(op).upper() for op in operations]
        unknown = sorted(set(operations) - AUDITABLE_OPERATIONS)
        if unknown:
            raise ConfigurationError(
                f"Invalid table rules for '{table}': unknown operations {unknown}. "
                f"Supported: {sorted(AUDITABLE_OPERATIONS)}."
            )

    sensitivity = raw.get("sensitivity_level")
    if sensitivity is not None and sensitivity not in VALID_SENSITIVITY_LEVELS:
        raise ConfigurationError(
            f"Invalid table rules for '{table}': 'sensitivity_level' must be one of "
            f"{sorted(VALID_SENSITIVITY_LEVELS)}."
        )

    return TableRules(
        enabled=raw.get("enabled", True) is not False,
        audited_operations=operations,
        sensitivity_level=sensitivity,
    )


def _parse_operation_rules(raw: Mapping[str, Any], base: OperationRules) -> OperationRules:
    known = OperationRules.__dataclass_fields__
    values = dict(vars(base))
    for key, value in raw.items():
        if key not in known:
            raise ConfigurationError(
                f"Invalid operation rule '{key}'. Supported: {sorted(known)}."
            )
        if not isinstance(value, bool):
            raise ConfigurationError(f"Invalid operation rule '{key}': expected a boolean.")
        values[key] = value
    return OperationRules(**values)


# ─── Config file loading ──────────────────────────────────────────────────────


def load_config_file(path: Optional[str] = None) -> dict[str, Any]:
    """Load a Panoptes YAML config file into a mapping for ``init_config()``.

    If no file is found at any search path, returns an empty mapping (all
    defaults) rather than failing.

    Raises:
        ConfigurationError: On unreadable files, YAML parse errors, or a top
            level that is not a mapping.
    """
    search_paths: list[str] = []
    if path:
        search_paths.append(path)
    env_path = os.environ.get("PANOPTES_CONFIG")
    if env_path:
        search_paths.append(env_path)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("panoptes_config_file_not_found", searched=search_paths)
        raw: dict[str, Any] = {}
    else:
        try:
            with open(found_path) as fh:
                loaded = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse {found_path}: {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Could not read {found_path}: {exc}") from exc

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"{found_path} is not a valid YAML mapping. "
                "The config file must be a YAML dictionary at the top level."
            )
        logger.info("panoptes_config_file_loaded", path=found_path)
        raw = loaded

    _apply_env_overrides(raw)
    return raw


def init_audit_from_file(
    path: Optional[str] = None,
    *,
    database_client: Any = None,
) -> None:
    """Load a YAML config file and initialize the store with it.

    ``database_client`` supplies the storage sink's connection, which cannot be
    expressed in YAML.
    """
    raw = load_config_file(path)
    if database_client is not None:
        transports = dict(raw.get("transports") or {})
        database = dict(transports.get("database") or {})
        database["client"] = database_client
        transports["database"] = database
        raw["transports"] = transports
    init_config(raw)


def _apply_env_overrides(raw: dict[str, Any]) -> None:
    env_app_name = os.environ.get("PANOPTES_APP_NAME")
    if env_app_name:
        raw["app_name"] = env_app_name
    env_environment = os.environ.get("PANOPTES_ENVIRONMENT")
    if env_environment:
        raw["environment"] = env_environment
