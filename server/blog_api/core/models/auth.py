from typing import Optional, Literal
from pydantic import BaseModel

from .blog import AuthorRef

UserRole = Literal["admin", "editor", "reader"]


class TokenPayload(BaseModel):
    sub: str  # user_id
    email: str
    role: UserRole
    exp: int
    name: Optional[str] = None


class CurrentUser(BaseModel):
    id: str
    email: str
    role: UserRole
    name: Optional[str] = None

    def as_author(self) -> AuthorRef:
        """Author reference for posts created by this user."""
        return AuthorRef(id=self.id, name=self.name or self.email)
