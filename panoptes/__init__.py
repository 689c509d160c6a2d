"""Panoptes — SQL audit instrumentation for async Python database clients.

Wrap a driver connection, and every query it runs is classified, filtered by
the configured rules, enriched with the current user context and delivered
to the enabled transports (console, file, HTTP, database table).

    import panoptes

    panoptes.init_audit({
        "app_name": "billing-api",
        "environment": "prod",
        "transports": {"enabled": ["console", "file"]},
        "table_rules": {"payments": {"audited_operations": ["INSERT", "UPDATE", "DELETE"]}},
    })

    db = panoptes.create_audited_postgres_client(conn, {"host": "db1", "database": "billing"})

    async def handle(request):
        return await panoptes.run_with_user_context(
            {"actor_type": "USER", "app_user_id": request.user.id},
            charge, db, request,
        )

Layout:
    config.py      — configuration store + YAML loading
    context.py     — task-scoped user context
    core/          — classify → decide → build → dispatch pipeline
    audit/         — AuditEvent, transports, audit table schema
    adapters/      — per-engine adapters + AuditedClient wrapper
    middleware.py  — Starlette middleware binding request context
    cli.py         — panoptes-create-table
"""

from panoptes.adapters.interceptor import (
    AuditedClient,
    create_audited_client,
    create_audited_mssql_client,
    create_audited_mysql_client,
    create_audited_oracle_client,
    create_audited_postgres_client,
    create_audited_sqlite_client,
)
from panoptes.audit.models import AuditEvent, DbInfo, ParsedSql, QueryError, QueryPayload
from panoptes.cli import generate_audit_table_sql
from panoptes.config import (
    PanoptesConfig,
    TableRules,
    get_config,
    init_audit_from_file,
    init_config,
    is_initialized,
    load_config_file,
    set_operation_rules,
    set_table_rules,
)
from panoptes.context import (
    UserContext,
    clear_user_context,
    get_user_context,
    run_with_user_context,
    set_user_context,
    user_context,
)
from panoptes.core.audit_engine import audit_query
from panoptes.core.sql_parser import classify_sql, parse_sql
from panoptes.errors import AdapterValidationError, ConfigurationError, PanoptesError
from panoptes.utils.logger import configure_logging

init_audit = init_config

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "init_audit",
    "init_config",
    "init_audit_from_file",
    "load_config_file",
    "get_config",
    "is_initialized",
    "set_table_rules",
    "set_operation_rules",
    "PanoptesConfig",
    "TableRules",
    # Context
    "UserContext",
    "set_user_context",
    "get_user_context",
    "clear_user_context",
    "run_with_user_context",
    "user_context",
    # Clients
    "AuditedClient",
    "create_audited_client",
    "create_audited_postgres_client",
    "create_audited_mysql_client",
    "create_audited_mssql_client",
    "create_audited_sqlite_client",
    "create_audited_oracle_client",
    # Pipeline
    "audit_query",
    "classify_sql",
    "parse_sql",
    "AuditEvent",
    "DbInfo",
    "ParsedSql",
    "QueryError",
    "QueryPayload",
    # Schema
    "generate_audit_table_sql",
    # Errors
    "PanoptesError",
    "ConfigurationError",
    "AdapterValidationError",
    # Logging
    "configure_logging",
]
