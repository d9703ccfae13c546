from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserCredentials(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$")
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class AuthResponse(BaseModel):
    user: UserItem
    token: str
