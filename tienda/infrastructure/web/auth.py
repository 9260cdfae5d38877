"""
Autorización de las rutas HTTP: token Bearer para el panel y para clientes.
"""

import json
import logging
from datetime import datetime
from functools import wraps
from typing import Optional

from flask import request, jsonify, g

from tienda.application.auth import AdminAuth
from tienda.domain.errors import AuthenticationRequired, AccessDenied

logger = logging.getLogger(__name__)


def bearer_token() -> Optional[str]:
    """Token del header Authorization, o None si no viene uno con formato Bearer."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[7:].strip() or None


def log_audit_event(action: str, reason: str, user_id: str) -> None:
    audit_event = {
        'timestamp': datetime.now().isoformat(),
        'service': 'tienda',
        'action': action,
        'reason': reason,
        'user_id': user_id,
        'endpoint': request.endpoint,
        'ip_address': request.remote_addr,
    }
    if action == 'ACCESS_GRANTED':
        logger.info(f"AUDIT_EVENT: {json.dumps(audit_event)}")
    else:
        logger.warning(f"AUDIT_EVENT: {json.dumps(audit_event)}")


def require_admin(admin_auth: AdminAuth):
    """
    Decorador para las rutas del panel. Sin token responde 401; con un token
    de cliente responde 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = bearer_token()
            if token is None:
                log_audit_event('ACCESS_DENIED', 'Missing or invalid Authorization header', 'unknown')
                return jsonify({
                    'error': 'AuthenticationRequired',
                    'message': 'Token de autorización requerido'
                }), 401
            try:
                g.admin_user = admin_auth.verify(token)
            except AuthenticationRequired as e:
                log_audit_event('ACCESS_DENIED', str(e), 'unknown')
                return jsonify({'error': 'AuthenticationRequired', 'message': str(e)}), 401
            except AccessDenied as e:
                log_audit_event('ACCESS_DENIED', str(e), 'unknown')
                return jsonify({'error': 'AccessDenied', 'message': str(e)}), 403

            log_audit_event('ACCESS_GRANTED', 'admin token', g.admin_user)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
