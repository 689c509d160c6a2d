"""Unit tests for panoptes.core.rules_engine — precedence and reason codes."""

from __future__ import annotations

from panoptes.config import OperationRules, PanoptesConfig, TableRules
from panoptes.core.rules_engine import AuditDecision, should_audit
from panoptes.core.sql_parser import classify_sql


def _config(
    table_rules: dict[str, TableRules] | None = None,
    operation_rules: OperationRules | None = None,
) -> PanoptesConfig:
    return PanoptesConfig(
        app_name="test-app",
        table_rules=table_rules or {},
        operation_rules=operation_rules or OperationRules(),
    )


class TestDefault:
    def test_allowed_by_default(self) -> None:
        decision = should_audit(_config(), classify_sql("SELECT * FROM users"))
        assert decision == AuditDecision(audit=True, reason="default:allowed")

    def test_other_statements_have_no_switch(self) -> None:
        config = _config(
            operation_rules=OperationRules(
                audit_select=False, audit_insert=False, audit_update=False,
                audit_delete=False, audit_ddl=False,
            )
        )
        assert should_audit(config, classify_sql("BEGIN")).audit is True


class TestOperationRules:
    def test_select_disabled(self) -> None:
        config = _config(operation_rules=OperationRules(audit_select=False))
        decision = should_audit(config, classify_sql("SELECT 1 FROM t"))
        assert decision.audit is False
        assert decision.reason == "operationRules:SELECT=false"

    def test_ddl_disabled(self) -> None:
        config = _config(operation_rules=OperationRules(audit_ddl=False))
        decision = should_audit(config, classify_sql("DROP TABLE t"))
        assert decision == AuditDecision(audit=False, reason="operationRules:DDL=false")

    def test_other_operations_unaffected(self) -> None:
        config = _config(operation_rules=OperationRules(audit_select=False))
        assert should_audit(config, classify_sql("DELETE FROM t")).audit is True


class TestTableRules:
    def test_disabled_table(self) -> None:
        config = _config(table_rules={"sessions": TableRules(enabled=False)})
        decision = should_audit(config, classify_sql("DELETE FROM sessions"))
        assert decision == AuditDecision(audit=False, reason="tableRules:sessions:disabled")

    def test_allow_list_permits_listed_operation(self) -> None:
        """auditedOperations=[DELETE] with global DELETE on: DELETE audited, UPDATE not."""
        config = _config(table_rules={"users": TableRules(audited_operations=["DELETE"])})

        delete = should_audit(config, classify_sql("DELETE FROM users WHERE id = 1"))
        update = should_audit(config, classify_sql("UPDATE users SET name = 'x'"))

        assert delete.audit is True
        assert delete.reason == "default:allowed"
        assert update.audit is False
        assert update.reason == "tableRules:users:op_not_in_auditedOperations"

    def test_empty_allow_list_is_no_restriction(self) -> None:
        config = _config(table_rules={"users": TableRules(audited_operations=[])})
        assert should_audit(config, classify_sql("SELECT * FROM users")).audit is True

    def test_rules_for_other_tables_ignored(self) -> None:
        config = _config(table_rules={"payments": TableRules(enabled=False)})
        assert should_audit(config, classify_sql("SELECT * FROM users")).audit is True

    def test_skipped_without_main_table(self) -> None:
        """No main table extracted: table rules are not consulted at all."""
        config = _config(table_rules={"users": TableRules(enabled=False)})
        decision = should_audit(config, classify_sql("CALL purge_users()"))
        assert decision.audit is True
        assert decision.reason == "default:allowed"


class TestPrecedence:
    def test_global_veto_beats_table_allow_list(self) -> None:
        """Global audit_select=False wins over a table rule listing SELECT."""
        config = _config(
            table_rules={"users": TableRules(audited_operations=["SELECT"])},
            operation_rules=OperationRules(audit_select=False),
        )
        decision = should_audit(config, classify_sql("SELECT * FROM users"))
        assert decision.audit is False
        assert decision.reason == "operationRules:SELECT=false"

    def test_disabled_checked_before_allow_list(self) -> None:
        config = _config(
            table_rules={"users": TableRules(enabled=False, audited_operations=["SELECT"])}
        )
        decision = should_audit(config, classify_sql("SELECT * FROM users"))
        assert decision.reason == "tableRules:users:disabled"
