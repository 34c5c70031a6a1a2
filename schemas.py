"""
Database Schemas

MongoDB collection schemas defined as Pydantic models.
Model name is converted to lowercase for the collection name:
- Role -> "role" collection
- User -> "user" collection
- Project -> "project" collection
- Document -> "document" collection

References between collections are stored as ObjectIds and resolved
explicitly by the services that need them.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RoleName(str, Enum):
    ADMIN = "Admin"
    PROJECT_LEAD = "Project Lead"
    DEVELOPER = "Developer"


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


class Role(BaseModel):
    """
    Roles collection schema
    Collection name: "role"
    """
    model_config = ConfigDict(use_enum_values=True)

    name: RoleName = Field(..., description="Unique role name")


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    username: str = Field(..., min_length=1, description="Unique login name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    role_id: ObjectId = Field(..., description="Reference to the role collection")
    mfa_enabled: bool = Field(False, description="Is MFA enabled")
    mfa_secret: Optional[str] = Field(None, description="Confirmed base32 TOTP secret")
    mfa_temp_secret: Optional[str] = Field(None, description="Pending TOTP secret awaiting confirmation")


class Project(BaseModel):
    """
    Projects collection schema
    Collection name: "project"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)

    name: str = Field(..., min_length=1, description="Unique project name")
    description: str = Field(..., min_length=1)
    deadline: datetime
    status: ProjectStatus = Field(ProjectStatus.ACTIVE, validate_default=True)
    project_lead: Optional[ObjectId] = Field(None, description="User leading this project")
    developers: List[ObjectId] = Field(default_factory=list, description="Assigned developer user ids")


class Document(BaseModel):
    """
    Documents collection schema
    Collection name: "document"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    original_filename: str
    storage_filename: str = Field(..., description="Generated blob key, unique")
    mime_type: str
    size: int = Field(..., ge=0)
    project: ObjectId
    uploaded_by: ObjectId
