from typing import Optional

from pydantic import BaseModel


class MemberSession(BaseModel):
    """Identity handle passed into every backend call (bearer token of the signed-in member)."""
    access_token: str
    member_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"
