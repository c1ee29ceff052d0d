# runners_awareness/app/schemas/user.py
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from uuid import UUID

from pydantic import ConfigDict, Field, TypeAdapter

from runners_awareness.app.models.user import User
from runners_awareness.app.schemas.common import CamelModel

Role = Literal[
    "user",
    "parent",
    "adoptive_parent",
    "caregiver",
    "therapist",
    "admin",
    "superadmin",
]

ADMIN_ROLES = {"admin", "superadmin"}


# --- Role-specific profile variants, keyed by `role` ---

class ContactDetails(CamelModel):
    # A field from another role's variant is an error, not silently dropped
    model_config = ConfigDict(extra="forbid")

    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=50)
    zip_code: Optional[str] = Field(None, max_length=20)
    emergency_contact_name: Optional[str] = Field(None, max_length=100)
    emergency_contact_phone: Optional[str] = Field(None, max_length=20)
    emergency_contact_relationship: Optional[str] = Field(None, max_length=50)


class UserProfile(ContactDetails):
    role: Literal["user"] = "user"


class ParentProfile(ContactDetails):
    role: Literal["parent", "adoptive_parent"]
    relationship_to_runner: Optional[str] = Field(None, max_length=50)


class CaregiverProfile(ContactDetails):
    role: Literal["caregiver"] = "caregiver"
    relationship_to_runner: Optional[str] = Field(None, max_length=50)
    organization: Optional[str] = Field(None, max_length=100)
    years_of_experience: Optional[str] = Field(None, max_length=20)


class TherapistProfile(ContactDetails):
    role: Literal["therapist"] = "therapist"
    license_number: Optional[str] = Field(None, max_length=50)
    organization: Optional[str] = Field(None, max_length=100)
    credentials: Optional[str] = Field(None, max_length=100)
    specialization: Optional[str] = Field(None, max_length=100)
    years_of_experience: Optional[str] = Field(None, max_length=20)


RoleProfile = Annotated[
    Union[UserProfile, ParentProfile, CaregiverProfile, TherapistProfile],
    Field(discriminator="role"),
]

ROLE_PROFILE_ADAPTER = TypeAdapter(RoleProfile)

# Roles that carry a profile variant; admins have none
PROFILE_ROLES = {"user", "parent", "adoptive_parent", "caregiver", "therapist"}


# Outbound user DTO: never carries the password hash, secrets or tokens
class UserResponse(CamelModel):
    user_id: UUID
    username: str
    email: str
    phone_number: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    role: str
    profile: Optional[Dict[str, Any]] = None
    email_verified: bool
    phone_verified: bool
    two_factor_enabled: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email,
            phone_number=user.phone_number,
            first_name=user.first_name or "",
            last_name=user.last_name or "",
            full_name=user.display_name,
            role=user.role,
            profile=user.role_details,
            email_verified=bool(user.email_verified),
            phone_verified=bool(user.phone_verified),
            two_factor_enabled=bool(user.two_factor_enabled),
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )
