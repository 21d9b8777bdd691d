# Filename: clouddrive/models.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import BigInteger, Column, Index, UniqueConstraint, text
from typing import Optional, List
from datetime import datetime


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    # null for accounts created through Google sign-in
    hashed_password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    google_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    files: List["File"] = Relationship(back_populates="owner")


class File(SQLModel, table=True):
    """A node of the catalog: either a stored file or a folder."""

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    parent_id: Optional[int] = Field(default=None, foreign_key="file.id", index=True)
    name: str
    original_name: str
    size: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    mime_type: Optional[str] = None
    extension: Optional[str] = None
    # blob key in the object store; folders have none
    path: Optional[str] = None
    is_folder: bool = False
    is_starred: bool = False
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    owner: Optional[User] = Relationship(back_populates="files")


class FileVersion(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("file_id", "version_number", name="uq_fileversion_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    file_id: int = Field(foreign_key="file.id", index=True)
    version_number: int
    size: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    path: str
    change_type: str = "update"  # update | restore
    created_by: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Share(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_share_private_recipient",
            "file_id",
            "shared_with_email",
            unique=True,
            sqlite_where=text("share_type = 'private'"),
            postgresql_where=text("share_type = 'private'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    file_id: int = Field(foreign_key="file.id", index=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    # empty string for public links
    shared_with_email: str = Field(default="", index=True)
    permissions: str = "view"  # view | edit | admin
    share_type: str = "private"  # private | public
    public_token: Optional[str] = Field(default=None, unique=True)
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class UserQuota(SQLModel, table=True):
    user_id: int = Field(foreign_key="user.id", primary_key=True)
    plan: str = "free"
    storage_used: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    storage_limit: int = Field(sa_column=Column(BigInteger, nullable=False))
    file_count: int = 0
    file_count_limit: int
