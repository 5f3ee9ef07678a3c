from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthSession:
    """Authenticated identity handed explicitly to services and live views."""
    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_user(cls, user: Dict[str, Any], access_token: Optional[str] = None) -> "AuthSession":
        return cls(
            user_id=user["id"],
            email=user.get("email"),
            access_token=access_token,
            user_metadata=user.get("user_metadata") or {},
        )

    @property
    def display_name(self) -> str:
        return self.user_metadata.get("name") or self.user_metadata.get("full_name") or "New User"
