"""API Endpoints for registering users and logging in and out."""

from fastapi import APIRouter, Depends, Response, Security, status
from pydantic import BaseModel, Field

from filedepot.api.auth import authenticated_user, basic_credentials, get_services, token_scheme
from filedepot.errors import Unauthorized
from filedepot.services import Services

app_users = APIRouter(tags=["users"])


# REQUEST MODELS
class CreateUserBody(BaseModel):
    email: str | None = Field(None, description="Email address of the new user")
    password: str | None = Field(None, description="Password of the new user")


# RESPONSE MODELS
class UserResponse(BaseModel):
    id: str = Field(description="The id of the user")
    email: str = Field(description="The email address of the user")


class TokenResponse(BaseModel):
    token: str = Field(description="Token to pass in the X-Token header of subsequent requests")


@app_users.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(body: CreateUserBody, services: Services = Depends(get_services)) -> UserResponse:
    """Register a new user."""
    user = await services.users.create(body.email, body.password)
    return UserResponse(id=user.id, email=user.email)


@app_users.get("/users/me")
async def get_me(user_id: str = Depends(authenticated_user), services: Services = Depends(get_services)) -> UserResponse:
    """Get the user that belongs to the X-Token."""
    user = await services.users.get(user_id)
    if user is None:
        raise Unauthorized()
    return UserResponse(id=user.id, email=user.email)


@app_users.get("/connect")
async def connect(
    credentials: tuple[str, str] = Depends(basic_credentials), services: Services = Depends(get_services)
) -> TokenResponse:
    """Log in with Basic authentication (base64 of email:password) and get a token valid for 24 hours."""
    email, password = credentials
    return TokenResponse(token=await services.auth.authenticate(email, password))


@app_users.get("/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect(
    token: str | None = Security(token_scheme),
    services: Services = Depends(get_services),
):
    """Log out, invalidating the X-Token."""
    if not token:
        raise Unauthorized()
    await services.auth.resolve(token)
    await services.auth.revoke(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
