from typing import Optional, Dict, Any
from geoqueue.extensions import db
from geoqueue.models.audit import AuditLog

def audit_log(user_id: Optional[int], action: str, entity_type: Optional[str] = None, entity_id: Optional[int] = None, meta: Optional[Dict[str, Any]] = None):
    row = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta=meta or {},
    )
    db.session.add(row)
    return row
