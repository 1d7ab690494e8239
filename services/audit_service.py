"""
Audit Service

Centralized audit trail for state-changing payroll operations: shift
corrections, payroll configuration changes and advance workflow steps.
Audit rows are added to the caller's session and committed with the
caller's unit of work.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for centralized audit logging"""

    def __init__(self, session):
        self.session = session

    def log_action(self, action: str,
                   entity_type: Optional[str] = None,
                   entity_id: Optional[int] = None,
                   old_values: Optional[Dict[str, Any]] = None,
                   new_values: Optional[Dict[str, Any]] = None,
                   changed_by: Optional[int] = None,
                   notes: Optional[str] = None) -> AuditLog:
        """
        Record an audit event in the current transaction.

        Args:
            action: Action performed (e.g., 'update_shift', 'approve_advance')
            entity_type: Type of entity affected (e.g., 'shift', 'advance_payment')
            entity_id: ID of the affected entity
            old_values: Values before the change
            new_values: Values after the change
            changed_by: ID of the admin performing the action, None for system actions
            notes: Free-text context

        Returns:
            AuditLog: the pending audit row
        """
        audit = AuditLog()
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        audit.old_values = json.dumps(old_values, default=str) if old_values else None
        audit.new_values = json.dumps(new_values, default=str) if new_values else None
        audit.changed_by = changed_by
        audit.notes = notes

        self.session.add(audit)

        # DO NOT commit here - the enclosing service operation owns the transaction
        logger.debug(f"Audit logged: {action} on {entity_type}:{entity_id} by {changed_by or 'system'}")
        return audit

    def get_entity_history(self, entity_type: str, entity_id: int, limit: int = 50) -> List[AuditLog]:
        """
        Get audit history for a specific entity, newest first.

        Args:
            entity_type: Type of entity (e.g., 'shift', 'advance_payment')
            entity_id: ID of entity
            limit: Maximum number of records to return

        Returns:
            List of AuditLog records
        """
        return self.session.query(AuditLog).filter_by(entity_type=entity_type, entity_id=entity_id) \
                           .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()) \
                           .limit(limit).all()
