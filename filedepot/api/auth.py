"""Helper methods for authentication in the API."""

import base64
import binascii

from fastapi import Depends, Header, Request, Security
from fastapi.security import APIKeyHeader
from fastapi.security.utils import get_authorization_scheme_param

from filedepot.errors import Unauthorized
from filedepot.services import Services

token_scheme = APIKeyHeader(name="X-Token", scheme_name="Session token", auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def authenticated_user(
    token: str | None = Security(token_scheme), services: Services = Depends(get_services)
) -> str:
    """Resolve the X-Token header to a user id, raising Unauthorized if that is not possible"""
    return await services.auth.resolve(token)


async def optional_user(
    token: str | None = Security(token_scheme), services: Services = Depends(get_services)
) -> str | None:
    """Like authenticated_user, but anonymous (None) instead of Unauthorized"""
    if not token:
        return None
    try:
        return await services.auth.resolve(token)
    except Unauthorized:
        return None


def basic_credentials(authorization: str | None = Header(None)) -> tuple[str, str]:
    """Email and password from a 'Basic base64(email:password)' Authorization header"""
    scheme, param = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "basic":
        raise Unauthorized()
    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise Unauthorized()
    email, sep, password = decoded.partition(":")
    if not sep or not email:
        raise Unauthorized()
    return email, password
