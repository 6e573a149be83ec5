import json
import logging
from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog
from utils.clock import utcnow

logger = logging.getLogger(__name__)

def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None, timestamp=None):
    """
    Records a security event. Request details are attached when called
    while handling a request. Never pass passwords, codes or secrets in
    ``metadata``.
    """
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata) if metadata else None,
        timestamp=timestamp or utcnow(),
    )
    db.session.add(row)
    db.session.commit()
    logger.info("audit %s user_id=%s entity=%s:%s", action, user_id, entity, entity_id)
