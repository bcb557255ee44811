"""
Core components for audit system.

Contains:
- Data models (Issue, CategoryResult, AuditReport)
- Error taxonomy
- File enumeration, bounded executor, issue stream, aggregator
- Base class for scanners
"""
