from datetime import datetime
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .models import ContactType, Role

ShortName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=30)]
LongName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]


class ApiModel(BaseModel):
    """Base schema: camelCase on the wire, readable from ORM objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PasswordConfirmMixin(BaseModel):
    """Require ``passwordConfirm`` to repeat ``password``."""

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords do not match")
        return self


class UserCreate(PasswordConfirmMixin, ApiModel):
    """Signup payload. Unknown keys such as ``role`` are dropped."""

    first_name: ShortName
    last_name: LongName
    email: EmailStr
    password: str = Field(min_length=8, max_length=50)
    password_confirm: str

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserOut(ApiModel):
    """Response schema for user data."""

    id: int
    first_name: str
    last_name: str
    full_name: Optional[str] = None
    email: EmailStr
    role: Role = Role.USER
    created_at: datetime
    updated_at: datetime


class LoginRequest(ApiModel):
    """Login credentials. Missing values are rejected by the route."""

    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(ApiModel):
    """Address to send a reset link to. Anything unknown is answered with 404."""

    email: str


class ResetPasswordRequest(PasswordConfirmMixin, ApiModel):
    """New password submitted with a reset token."""

    password: str = Field(min_length=8, max_length=50)
    password_confirm: str


class ContactBase(ApiModel):
    """Shared validators for contact payloads."""

    @field_validator("email", check_fields=False)
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value

    @field_validator("type", mode="before", check_fields=False)
    @classmethod
    def uppercase_type(cls, value):
        return value.upper() if isinstance(value, str) else value


class ContactCreate(ContactBase):
    """Schema for creating new contact."""

    name: ShortName
    email: EmailStr
    phone: Optional[str] = None
    type: ContactType = ContactType.PERSONAL
    user: Optional[int] = None


class ContactUpdate(ContactBase):
    """Schema for updating contact (all fields optional)."""

    name: Optional[ShortName] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    type: Optional[ContactType] = None

    @field_validator("name", "email", "type")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


class ContactOut(ApiModel):
    """Schema for returning contact with ID."""

    id: int
    name: str
    email: str
    phone: Optional[str] = None
    type: ContactType
    user_id: int = Field(serialization_alias="user")
    created_at: datetime
    updated_at: datetime


class ContactDetailOut(ContactOut):
    """Contact together with its owner."""

    owner: UserOut
