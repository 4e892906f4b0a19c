"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from portal.db.enums import Role


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    role: str
    account_id: UUID | None = None
    token_version: int


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency. Viewers always carry
    an account_id; admins may not.
    """
    user_id: UUID
    role: Role
    account_id: UUID | None = None
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
