"""Authentication module using password login and cookie sessions.

This module provides:
1. User registration (user + address) with bcrypt password hashes
2. Login issuing a signed JWT stored in a session cookie
3. Single active session per user
4. Dependencies for protecting routes
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Union
from uuid import UUID

import asyncpg
import bcrypt
from fastapi import Request, Response, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from config import settings_conf
from database import get_pool

logger = logging.getLogger(__name__)

# Constants
SESSION_EXPIRY_DAYS = settings_conf['session_expiry_days']
SESSION_COOKIE_NAME = settings_conf['session_cookie_name']
JWT_SECRET = settings_conf['jwt_secret'] or secrets.token_urlsafe(32)
JWT_ALGORITHM = "HS256"

# bcrypt only reads this many bytes of a password
MAX_PASSWORD_BYTES = 72

# Columns safe to show to other users
PUBLIC_USER_FIELDS = ('id', 'first_name', 'last_name', 'active')


class AuthError(Exception):
    """Base exception for authentication errors."""
    pass


class InvalidCredentialsError(AuthError):
    """Raised when email or password don't match."""
    pass


class EmailTakenError(AuthError):
    """Raised when registering with an email that already exists."""
    pass


class SessionExpiredError(AuthError):
    """Raised when a session has expired."""
    pass


class InvalidPasswordError(AuthError):
    """Raised when a new password cannot be hashed."""
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def password_matches(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash or len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def public_user(user) -> Optional[Dict[str, Any]]:
    """Strip a user record down to the fields other users may see."""
    if user is None:
        return None
    return {field: user[field] for field in PUBLIC_USER_FIELDS}


class AuthManager:
    """Manages users, credentials and sessions."""

    def __init__(self, pool=None):
        """Initialize auth manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        address: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Create a user together with their address.

        Args:
            first_name: User's first name
            last_name: User's last name
            email: Login email, unique case-insensitively
            password: Plain text password, stored as a bcrypt hash
            address: Dict with line_one, line_two, city, state, zip_code

        Returns:
            The created user record (without password hash)

        Raises:
            EmailTakenError: If the email is already registered
            InvalidPasswordError: If the password is longer than MAX_PASSWORD_BYTES
        """
        if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise InvalidPasswordError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )

        await self.ensure_pool()

        password_hash = await asyncio.to_thread(hash_password, password)

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    address_id = await conn.fetchval(
                        '''
                        INSERT INTO addresses (line_one, line_two, city, state, zip_code)
                        VALUES ($1, $2, $3, $4, $5)
                        RETURNING id
                        ''',
                        address['line_one'],
                        address.get('line_two'),
                        address['city'],
                        address['state'],
                        address['zip_code']
                    )

                    user = await conn.fetchrow(
                        '''
                        INSERT INTO users (
                            first_name, last_name, email, password_hash, active, address_id
                        ) VALUES ($1, $2, $3, $4, true, $5)
                        RETURNING id, first_name, last_name, email, active, address_id, created_at
                        ''',
                        first_name,
                        last_name,
                        email,
                        password_hash,
                        address_id
                    )

            logger.info(f"Registered user {user['id']}")
            return dict(user)

        except asyncpg.UniqueViolationError:
            raise EmailTakenError(f"Email already registered: {email}")
        except Exception as e:
            logger.error(f"Error registering user: {e}")
            raise AuthError(f"Failed to register user: {str(e)}")

    async def login(
        self,
        email: str,
        password: str,
        request: Optional[Request] = None
    ) -> Dict[str, Any]:
        """Check credentials and create a session.

        Args:
            email: Login email
            password: Plain text password
            request: Optional request object for session metadata

        Returns:
            Dict containing:
                - token: Session token for the cookie
                - expires_at: Session expiration timestamp
                - user: The user record

        Raises:
            InvalidCredentialsError: If the email is unknown or the password is wrong
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            user = await conn.fetchrow(
                '''
                SELECT id, first_name, last_name, email, active, address_id, password_hash
                FROM users
                WHERE lower(email) = lower($1)
                ''',
                email
            )

            if not user or not await asyncio.to_thread(
                password_matches, password, user['password_hash']
            ):
                raise InvalidCredentialsError("Invalid username or password.")

            expires_at = datetime.utcnow() + timedelta(days=SESSION_EXPIRY_DAYS)

            token = jwt.encode(
                {
                    'sub': str(user['id']),
                    'exp': expires_at,
                    'jti': secrets.token_hex(8)
                },
                JWT_SECRET,
                algorithm=JWT_ALGORITHM
            )

            async with conn.transaction():
                # Revoke any existing sessions for this user
                await conn.execute(
                    '''
                    UPDATE auth_sessions
                    SET revoked = true
                    WHERE user_id = $1 AND NOT revoked
                    ''',
                    user['id']
                )

                await conn.execute(
                    '''
                    INSERT INTO auth_sessions (
                        user_id, token, expires_at, user_agent, ip_address
                    ) VALUES ($1, $2, $3, $4, $5)
                    ''',
                    user['id'],
                    token,
                    expires_at,
                    request.headers.get('user-agent') if request else None,
                    request.client.host if request and request.client else None
                )

        user = dict(user)
        user.pop('password_hash')
        return {
            'token': token,
            'expires_at': expires_at,
            'user': user
        }

    async def verify_session(self, token: str) -> UUID:
        """Verify a session token.

        Args:
            token: The session token to verify

        Returns:
            The authenticated user id

        Raises:
            SessionExpiredError: If session has expired
            AuthError: For other verification errors
        """
        try:
            payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
            user_id = UUID(payload['sub'])
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except (JWTError, KeyError, ValueError) as e:
            raise AuthError(f"Invalid token: {str(e)}")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            session = await conn.fetchrow(
                '''
                SELECT expires_at
                FROM auth_sessions
                WHERE user_id = $1 AND token = $2
                AND NOT revoked
                ''',
                user_id,
                token
            )

            if not session:
                raise AuthError("Session not found or revoked")

            if session['expires_at'] < datetime.utcnow():
                raise SessionExpiredError("Session has expired")

            await conn.execute(
                'UPDATE auth_sessions SET last_used_at = now() WHERE token = $1',
                token
            )

        return user_id

    async def logout(self, user_id: Union[str, UUID]):
        """Log out by revoking the active session.

        Args:
            user_id: User to log out
        """
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    '''
                    UPDATE auth_sessions
                    SET revoked = true
                    WHERE user_id = $1
                    AND NOT revoked
                    ''',
                    UUID(str(user_id))
                )
        except Exception as e:
            logger.error(f"Error logging out: {e}")
            raise AuthError(f"Failed to log out: {str(e)}")

    async def get_user(self, user_id: Union[str, UUID]) -> Optional[Dict[str, Any]]:
        """Fetch a user record (without password hash)."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            user = await conn.fetchrow(
                '''
                SELECT id, first_name, last_name, email, active, address_id, created_at
                FROM users
                WHERE id = $1
                ''',
                UUID(str(user_id))
            )
        return dict(user) if user else None

    async def list_users(self) -> list:
        """Public records of all active users."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT id, first_name, last_name, active
                FROM users
                WHERE active
                ORDER BY last_name, first_name
                '''
            )
        return [dict(row) for row in rows]

# Create global instance
manager = AuthManager()

# Bearer tokens are accepted alongside the session cookie
auth_scheme = HTTPBearer(
    auto_error=False,
    description="Session token, if not sent as a cookie"
)


def set_session_cookie(response: Response, token: Optional[str]) -> None:
    """Establish or clear the session cookie."""
    if token is None:
        response.delete_cookie(SESSION_COOKIE_NAME)
        return
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_EXPIRY_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite='lax'
    )


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None
) -> Optional[str]:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Optional[Dict[str, Any]]:
    """FastAPI dependency resolving the current user, or None."""
    token = get_session_token(request, credentials)
    if not token:
        return None
    try:
        user_id = await manager.verify_session(token)
    except AuthError:
        return None
    return await manager.get_user(user_id)


async def get_current_user(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated user.

    Raises:
        HTTPException: 401 if there is no valid session
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login required"
        )
    return user

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'get_current_user',
    'get_optional_user',
    'set_session_cookie',
    'public_user',
    'AuthError',
    'InvalidCredentialsError',
    'EmailTakenError',
    'SessionExpiredError',
    'InvalidPasswordError',
    'MAX_PASSWORD_BYTES'
]
