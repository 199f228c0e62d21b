"""Audit package.

Tamper-evident audit ledger with hash chaining. Every orchestrated request
appends exactly one event.

Usage:
    from llmgate.audit import AuditChain, get_audit_storage

    chain = AuditChain(get_audit_storage("file", "data/audit"))
    valid, error = await chain.verify_chain()
"""

from llmgate.audit.chain import AuditChain, AuditStorage
from llmgate.audit.models import AuditChainStatus, AuditEvent, AuditEventType
from llmgate.audit.storage import FileAuditStorage, MemoryAuditStorage, get_audit_storage

__all__ = [
    "AuditChain",
    "AuditChainStatus",
    "AuditEvent",
    "AuditEventType",
    "AuditStorage",
    "FileAuditStorage",
    "MemoryAuditStorage",
    "get_audit_storage",
]
