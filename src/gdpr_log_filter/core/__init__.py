"""
Core masking engine components.

This package contains the record masking pipeline:
- Pattern validation and the default pattern table
- Rate limiting and the audit trail
- JSON, field-path, recursive and type-based masking
- Conditional rules and the orchestrator
- Metrics and logging setup
"""
