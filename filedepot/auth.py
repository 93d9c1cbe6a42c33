"""
Token based authentication.

A successful login creates an opaque random token that maps to the user id in the
session store for a fixed time. Using the token does not extend its lifetime:

    absent --authenticate--> active --revoke / expiry--> absent
"""

import logging
import uuid

from filedepot.errors import Unauthorized
from filedepot.stores.sessions import SessionStore
from filedepot.users import UserRegistry, check_password

logger = logging.getLogger("filedepot.auth")

SESSION_TTL = 24 * 60 * 60


def session_key(token: str) -> str:
    return f"auth_{token}"


class SessionAuthenticator:
    def __init__(self, users: UserRegistry, sessions: SessionStore, ttl: int = SESSION_TTL):
        self.users = users
        self.sessions = sessions
        self.ttl = ttl

    async def authenticate(self, email: str, password: str) -> str:
        """Check the credentials and return a new token, or raise Unauthorized"""
        user = await self.users.find_by_email(email)
        if user is None or not check_password(password, user.password):
            raise Unauthorized()
        token = str(uuid.uuid4())
        await self.sessions.set(session_key(token), user.id, self.ttl)
        logger.debug(f"New session for {user.id}")
        return token

    async def resolve(self, token: str | None) -> str:
        """Return the user id for this token, or raise Unauthorized"""
        if not token:
            raise Unauthorized()
        user_id = await self.sessions.get(session_key(token))
        if not user_id:
            raise Unauthorized()
        return user_id

    async def revoke(self, token: str) -> None:
        await self.sessions.delete(session_key(token))
