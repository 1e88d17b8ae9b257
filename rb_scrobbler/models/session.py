"""Authentication models."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Credentials:
    """Last.fm API application keys and user login."""

    api_key: str
    api_secret: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    session_key: Optional[str] = field(default=None, repr=False)

    @property
    def can_login(self) -> bool:
        """Whether a fresh session can be requested with these credentials."""
        return bool(self.username and self.password)


@dataclass
class Session:
    """Authenticated handle issued by the scrobbling service."""

    key: str = field(repr=False)
    endpoint: str
    username: Optional[str] = None
    valid: bool = True

    def invalidate(self) -> None:
        self.valid = False
