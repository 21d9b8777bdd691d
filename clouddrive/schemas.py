# Filename: clouddrive/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List, Literal
from datetime import datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: int
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    message: str
    success: bool = True
    token: str
    user: UserOut


class FileOut(BaseModel):
    id: int
    owner_id: int
    parent_id: Optional[int]
    name: str
    original_name: str
    size: int
    mime_type: Optional[str]
    extension: Optional[str]
    path: Optional[str]
    is_folder: bool
    is_starred: bool
    is_deleted: bool
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileListing(BaseModel):
    files: List[FileOut]
    page: int
    limit: int
    total: int
    fts: bool


class FileSummary(BaseModel):
    id: int
    name: str
    size: int
    type: Optional[str]


class DownloadOut(BaseModel):
    downloadUrl: str
    file: FileSummary


class FolderCreate(BaseModel):
    name: str
    parentId: Optional[int] = None


class FileUpdate(BaseModel):
    name: Optional[str] = None
    parentId: Optional[int] = None
    starred: Optional[bool] = None


class VersionOut(BaseModel):
    id: int
    file_id: int
    version_number: int
    size: int
    path: str
    change_type: str
    created_by: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ShareCreate(BaseModel):
    email: EmailStr
    permissions: Literal["view", "edit", "admin"] = "view"


class PublicLinkCreate(BaseModel):
    expiresAt: Optional[datetime] = None


class ShareOut(BaseModel):
    id: int
    file_id: int
    owner_id: int
    shared_with_email: str
    permissions: str
    share_type: str
    public_token: Optional[str]
    expires_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SharedFile(BaseModel):
    id: int
    name: str
    size: int
    type: Optional[str]
    created_at: datetime


class ShareListItem(BaseModel):
    id: int
    permissions: str
    share_type: str
    expires_at: Optional[datetime]
    created_at: datetime
    shared_with_email: Optional[str] = None
    owner_email: Optional[str] = None
    file: SharedFile


class ShareListing(BaseModel):
    shares: List[ShareListItem]
    page: int
    limit: int
    total: int


class PublicFileOut(BaseModel):
    file: FileSummary
    downloadUrl: str


class QuotaOut(BaseModel):
    plan: str
    storage_used: int
    storage_limit: int
    file_count: int
    file_count_limit: int

    model_config = ConfigDict(from_attributes=True)


class CheckoutRequest(BaseModel):
    priceId: Optional[str] = None
    planId: Optional[str] = None


class PlanOut(BaseModel):
    id: str
    name: str
    description: str
    priceMonthly: int
    currency: str
    storageLimitBytes: int
    fileCountLimit: int
    hasPrice: bool
