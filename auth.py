import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from models import db, User

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = 'HS256'


class AuthError(Exception):
    pass


def hash_password(password):
    return generate_password_hash(password)


def verify_password(user, password):
    return check_password_hash(user.password_hash, password)


def issue_token(user_id, now=None):
    now = now or datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(days=current_app.config['JWT_EXPIRES_DAYS']),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=TOKEN_ALGORITHM)


def decode_token(token):
    """Return the user id carried by ``token`` or raise AuthError."""
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthError("Token is not valid")

    user_id = payload.get('userId')
    if user_id is None:
        raise AuthError("Token is not valid")
    return user_id


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def login_required(view):
    """Resolve the bearer token to a user on ``g.user`` or answer 401."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"success": False, "message": "No token, authorization denied"}), 401

        try:
            user_id = decode_token(token)
        except AuthError as e:
            logger.debug(f"Rejected bearer token: {e}")
            return jsonify({"success": False, "message": str(e)}), 401

        user = db.session.get(User, user_id)
        if user is None:
            return jsonify({"success": False, "message": "Token is not valid"}), 401

        g.user = user
        return view(*args, **kwargs)
    return wrapped
