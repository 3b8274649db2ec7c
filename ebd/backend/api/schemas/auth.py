# ebd/backend/api/schemas/auth.py
from pydantic import BaseModel
from typing import Optional

from ...models.entities import AuthSession, UserSession, Workspace


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class Token(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None

    @classmethod
    def from_auth_session(cls, auth_session: AuthSession) -> "Token":
        return cls(
            access_token=auth_session.access_token,
            refresh_token=auth_session.refresh_token,
            token_type=auth_session.token_type,
            expires_in=auth_session.expires_in,
        )


class LoginResponse(BaseModel):
    """ Tokens, the resolved session and the first reload of the workspace. """
    token: Token
    session: UserSession
    workspace: Workspace


class RefreshResponse(BaseModel):
    token: Token
    session: UserSession
