"""
Authentication and authorization.

Credential primitives (password hashing, sign-up, sign-in, sign-out, password
rotation) and the per-request pipeline used as FastAPI dependencies:

    extract token -> resolve session -> load identity -> role gate

A missing or unusable credential is always 401; an authenticated user without
a required role is 403.
"""

import base64
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, FrozenSet, Mapping, Optional, Tuple

from fastapi import Depends, Header, Request

import database
from config import get_settings
from errors import AccessDenied, DuplicateKey, Unauthenticated, ValidationFailed

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100000


# ---------- Credentials ----------

def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    if salt is None:
        salt = secrets.token_hex(16)
    pwd_hash = hashlib.pbkdf2_hmac(
        'sha256', password.encode('utf-8'), salt.encode('utf-8'), PBKDF2_ITERATIONS
    ).hex()
    return pwd_hash, salt


def verify_password(password: str, pwd_hash: str, salt: str) -> bool:
    candidate, _ = hash_password(password, salt)
    return hmac.compare_digest(candidate, pwd_hash)


def sign_up(full_name: str, email: str, password: str, roles=None) -> dict:
    email = database.normalize_email(email)
    if database.find_user_by_email(email):
        raise DuplicateKey('Email already in use')
    user = database.insert_user(full_name, email, roles)
    pwd_hash, salt = hash_password(password)
    database.insert_account(user['id'], pwd_hash, salt)
    logger.info('User registered', extra={'user_id': user['id']})
    return user


def create_session(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    expires_at = database.utcnow() + timedelta(days=get_settings().session_ttl_days)
    database.insert_session(token, user_id, expires_at)
    return token


def sign_in(email: str, password: str) -> Tuple[str, dict]:
    """Check credentials and open a session. Returns (token, user)."""
    user = database.find_user_by_email(email)
    account = database.find_credential_account(user['id']) if user else None
    if not account or not verify_password(password, account['password_hash'], account['salt']):
        raise ValidationFailed('Invalid email or password')
    token = create_session(user['id'])
    logger.info('User signed in', extra={'user_id': user['id']})
    return token, user


def sign_out(token: str) -> None:
    database.delete_session(token)


def change_password(user_id: str, password: str) -> None:
    pwd_hash, salt = hash_password(password)
    if not database.update_account_password(user_id, pwd_hash, salt):
        database.insert_account(user_id, pwd_hash, salt)
    logger.info('Password changed', extra={'user_id': user_id})


def ensure_admin_user() -> Optional[dict]:
    """Create or promote the configured admin account."""
    settings = get_settings()
    if not settings.admin_email or not settings.admin_password:
        return None
    existing = database.find_user_by_email(settings.admin_email)
    if existing:
        if 'admin' in existing['roles']:
            return existing
        logger.info('Promoting existing user to admin', extra={'user_id': existing['id']})
        return database.set_user_roles(existing['id'], ['admin'])
    try:
        user = sign_up(settings.admin_full_name, settings.admin_email, settings.admin_password, roles=['admin'])
    except DuplicateKey:
        # created by another worker in the meantime
        return database.find_user_by_email(settings.admin_email)
    logger.info('Admin user created', extra={'user_id': user['id']})
    return user


# ---------- Signed tokens ----------

def _signature(token: str) -> str:
    digest = hmac.new(get_settings().auth_secret.encode('utf-8'), token.encode('utf-8'), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii').rstrip('=')


def sign_token(token: str) -> str:
    return f'{token}.{_signature(token)}'


def unsign_token(value: str) -> Optional[str]:
    token, sep, signature = value.rpartition('.')
    if not sep or not token:
        return None
    if not hmac.compare_digest(signature, _signature(token)):
        return None
    return token


# ---------- Request pipeline ----------

@dataclass(frozen=True)
class Identity:
    user: dict
    session: dict
    token: str

    @property
    def user_id(self) -> str:
        return self.user['id']

    @property
    def roles(self) -> FrozenSet[str]:
        return frozenset(self.user['roles'])


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(' ')
    token = token.strip()
    if scheme.lower() != 'bearer' or not token or ' ' in token:
        return None
    return token


def _cookie_token(cookies: Mapping[str, str]) -> Optional[str]:
    for name in get_settings().session_cookie_names:
        value = (cookies.get(name) or '').strip()
        if value:
            return value
    return None


def extract_token(authorization: Optional[str], cookies: Mapping[str, str]) -> str:
    for source in get_settings().token_sources:
        if source == 'header':
            token = _bearer_token(authorization)
        elif source == 'cookie':
            token = _cookie_token(cookies)
        else:
            token = None
        if token:
            return token
    raise Unauthenticated()


def _live_session(token: Optional[str]) -> Optional[Tuple[str, dict]]:
    if not token:
        return None
    session = database.find_session_by_token(token)
    if session is None:
        return None
    if database.as_utc(session['expires_at']) <= database.utcnow():
        database.delete_session(token)
        return None
    return session['user_id'], session


def lookup_session(token: str) -> Optional[Tuple[str, dict]]:
    """Fast path: the raw token is the stored session token."""
    return _live_session(token)


def verify_signed_session(token: str) -> Optional[Tuple[str, dict]]:
    """Fallback: the token is a signed cookie value."""
    return _live_session(unsign_token(token))


SESSION_RESOLVERS: Tuple[Callable[[str], Optional[Tuple[str, dict]]], ...] = (
    lookup_session,
    verify_signed_session,
)


def resolve_session(token: str) -> Optional[Tuple[str, dict]]:
    for resolver in SESSION_RESOLVERS:
        found = resolver(token)
        if found is not None:
            return found
    return None


def get_identity(request: Request, authorization: Optional[str] = Header(None)) -> Identity:
    token = extract_token(authorization, request.cookies)
    found = resolve_session(token)
    if found is None:
        raise Unauthenticated()
    user_id, session = found
    user = database.find_user_by_id(user_id)
    if user is None:
        raise Unauthenticated()
    return Identity(user=user, session=session, token=session['token'])


def require_roles(*roles: str) -> Callable[..., Identity]:
    required = frozenset(roles)

    def role_gate(identity: Identity = Depends(get_identity)) -> Identity:
        if not identity.roles & required:
            logger.warning('Access denied', extra={'user_id': identity.user_id})
            raise AccessDenied()
        return identity

    return role_gate
