from typing import Optional
from pydantic import BaseModel

class Identity(BaseModel):
    """
    Who is browsing: an authenticated user id (server-tracked state) or an
    anonymous client token (client-tracked state only).
    """
    user_id: Optional[str] = None
    anonymous_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)
