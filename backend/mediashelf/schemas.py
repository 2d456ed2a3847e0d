"""Request bodies accepted by the API."""

from typing import Optional

from pydantic import BaseModel, Field

from mediashelf.models.tables import ItemKind


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class ReviewCreate(BaseModel):
    item_type: ItemKind
    item_id: str = Field(min_length=1)
    rating: int
    text: Optional[str] = None


class ReviewUpdate(BaseModel):
    rating: Optional[int] = None
    text: Optional[str] = None


class ListCreate(BaseModel):
    name: str
    type: str
    description: Optional[str] = None
    is_public: bool = False


class ListUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None


class LibraryAdd(BaseModel):
    list_id: str
    item_type: ItemKind
    item_id: str = Field(min_length=1)
    status: Optional[str] = None


class LibraryUpdate(BaseModel):
    status: str


class CommentCreate(BaseModel):
    text: str


class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class AccountDelete(BaseModel):
    password: str


class AdminUserUpdate(ProfileUpdate):
    role: Optional[str] = None
    active: Optional[bool] = None
    # Always refused; passwords change through /users/me/password
    password: Optional[str] = None
