"""Audit trail for the public invitation flow."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.services.access.context import SYSTEM_CONTEXT, RequestContext

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    action: str,
    resource_type: str,
    resource_id: Optional[Any] = None,
    status: str = "success",
    context: Optional[RequestContext] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit entry in the caller's transaction.

    The entry commits or rolls back together with the action it describes.
    """
    context = context or SYSTEM_CONTEXT
    entry = AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        status=status,
        actor=context.actor,
        ip_address=context.ip_address,
        user_agent=(context.user_agent or "")[:512] or None,
        details=details or {},
    )
    db.add(entry)
    logger.debug("Audit %s %s:%s %s", action, resource_type, resource_id, status)
    return entry
