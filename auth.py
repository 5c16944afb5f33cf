"""Bearer-token authentication with HS256 JWTs signed by joserfc."""

import functools
import logging
import time

from flask import current_app, g, request
from joserfc import jwt
from joserfc.errors import JoseError
from joserfc.jwk import OctKey

from errors import AuthError
from models import User, db

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'
_CLAIMS_REGISTRY = jwt.JWTClaimsRegistry(exp={'essential': True})


def _signing_key() -> OctKey:
    return OctKey.import_key(current_app.config['JWT_SECRET'])


def issue_token(user_id: int, expires_in: int = None) -> str:
    """Sign an access token for a user. ``expires_in`` is in seconds."""
    if expires_in is None:
        expires_in = int(current_app.config['JWT_EXPIRES_HOURS'] * 3600)
    now = int(time.time())
    payload = {'userId': user_id, 'iat': now, 'exp': now + expires_in}
    return jwt.encode({'alg': JWT_ALGORITHM}, payload, _signing_key(), algorithms=[JWT_ALGORITHM])


def decode_token(token: str) -> dict:
    """Verify signature and expiry. Raises AuthError (403) on any failure."""
    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[JWT_ALGORITHM]).claims
        _CLAIMS_REGISTRY.validate(claims)
    except (JoseError, ValueError) as e:
        logger.info('Rejected access token: %s', e)
        raise AuthError('Invalid or expired token', status_code=403) from e
    if 'userId' not in claims:
        raise AuthError('Invalid or expired token', status_code=403)
    return claims


def _bearer_token() -> str:
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return ''
    return token.strip()


def login_required(view):
    """Resolve the bearer token to a User and expose it as ``g.current_user``."""

    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthError('Access token required')
        claims = decode_token(token)
        user = db.session.get(User, claims['userId'])
        if user is None:
            raise AuthError('User not found')
        g.current_user = user
        return view(*args, **kwargs)

    return wrapped


def current_user() -> User | None:
    """Return the authenticated User or None."""
    return g.get('current_user')
