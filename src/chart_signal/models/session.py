"""Session Pydantic model."""

from pydantic import BaseModel


class Session(BaseModel):
    user_id: str
    access_token: str
