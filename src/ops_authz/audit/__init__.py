"""Audit trail package for ops-authz.

Provides the append-only record of permission matrix mutations, with an
in-memory backend, a JSONL file backend, and query filters.
"""
from __future__ import annotations

from ops_authz.audit.logger import JsonlAuditTrail
from ops_authz.audit.search import AuditFilter
from ops_authz.audit.trail import AuditEntry, AuditTrail, InMemoryAuditTrail

__all__ = [
    "AuditEntry",
    "AuditFilter",
    "AuditTrail",
    "InMemoryAuditTrail",
    "JsonlAuditTrail",
]
