"""Panoptes core pipeline.

classify (sql_parser) → decide (rules_engine) → build (event_builder) →
dispatch, orchestrated by ``audit_query()`` in audit_engine.py. Optional row
snapshots live in data_capture.py.
"""
