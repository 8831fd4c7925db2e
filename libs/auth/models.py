from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents the caller identified by a verified access token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
