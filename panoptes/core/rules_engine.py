"""Audit decision rules.

``should_audit()`` is pure: no I/O, no clock, no context. First matching rule
wins:

  1. Global operation switch (``operation_rules.audit_<op>`` is False)
  2. Table rule for the main table, only when a main table was extracted:
     ``enabled`` False, then an ``audited_operations`` allow-list
  3. Allowed by default

A table allow-list can narrow what passes the global gate but never re-enables
an operation class that is globally switched off.
"""

from __future__ import annotations

from dataclasses import dataclass

from panoptes.audit.models import ParsedSql
from panoptes.config import PanoptesConfig

# Operation type -> OperationRules attribute. OTHER has no switch.
_OPERATION_SWITCHES: dict[str, str] = {
    "SELECT": "audit_select",
    "INSERT": "audit_insert",
    "UPDATE": "audit_update",
    "DELETE": "audit_delete",
    "DDL": "audit_ddl",
}

REASON_DEFAULT_ALLOWED = "default:allowed"


@dataclass(frozen=True)
class AuditDecision:
    audit: bool
    reason: str


def should_audit(config: PanoptesConfig, parsed_sql: ParsedSql) -> AuditDecision:
    """Decide whether a classified statement is audited.

    Global operation switches veto first, then the rule for the main table
    (disabled, or operation missing from a non-empty audited_operations).

    Args:
        config: The active configuration.
        parsed_sql: Output of ``classify_sql()``.

    Returns:
        AuditDecision with the verdict and a reason tag such as
        ``operationRules:SELECT=false`` or ``default:allowed``.
    """
    op = parsed_sql.operation_type

    switch = _OPERATION_SWITCHES.get(op)
    if switch is not None and getattr(config.operation_rules, switch) is False:
        return AuditDecision(audit=False, reason=f"operationRules:{op}=false")

    table = parsed_sql.main_table
    if table:
        rule = config.table_rules.get(table)
        if rule is not None:
            if rule.enabled is False:
                return AuditDecision(audit=False, reason=f"tableRules:{table}:disabled")
            if rule.audited_operations and op not in rule.audited_operations:
                return AuditDecision(
                    audit=False,
                    reason=f"tableRules:{table}:op_not_in_auditedOperations",
                )

    return AuditDecision(audit=True, reason=REASON_DEFAULT_ALLOWED)
