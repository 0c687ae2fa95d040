"""
Audit log for administrative actions.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from .config import config
from .dynamo import get_table
from .logging import logger, log_side_effect_failure


class AuditLog:
    """Best-effort writer: storage failures are logged, never raised."""

    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_table(config.AUDIT_LOG_TABLE)
        return self._table

    def record(
        self,
        actor_id: str,
        action_type: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Write one audit entry.

        Returns:
            The stored entry, or None if it could not be saved

        Raises:
            ValueError: a required argument is missing (programming error)
        """
        if not actor_id or not action_type or not resource_type or not resource_id:
            raise ValueError('Missing required parameters for audit log')

        entry = {
            'auditId': str(uuid.uuid4()),
            'userId': actor_id,
            'actionType': action_type,
            'resourceType': resource_type,
            'resourceId': resource_id,
            'details': details or {},
            'createdAt': datetime.now(timezone.utc).isoformat()
        }
        try:
            self.table.put_item(Item=entry)
        except Exception as e:
            log_side_effect_failure('AUDIT LOG', e, action=action_type, resource=resource_id, actor=actor_id)
            return None

        logger.info(f"[AUDIT LOG] Logged {action_type} on {resource_type} {resource_id} by {actor_id}")
        return entry
