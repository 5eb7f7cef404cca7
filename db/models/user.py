"""
Account and Profile models.

Account: Authentication and identity
Profile: Minimal profile stub written at first OAuth sign-in
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from db.engine import Base


class Account(Base):
    """
    Account for authentication.

    ``hashed_password`` is null for OAuth-only accounts.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("auth_provider", "provider_id", name="uq_accounts_provider_identity"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    hashed_password = Column(Text, nullable=True)
    auth_provider = Column(String(50), nullable=False, default="local")
    provider_id = Column(String(255), nullable=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(Integer, nullable=True)  # Unix timestamp
    last_login = Column(Integer, nullable=True)  # Unix timestamp
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    profile = relationship("Profile", back_populates="account", uselist=False, cascade="all, delete-orphan")
    refresh_sessions = relationship("RefreshSession", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Account(id={self.id}, email={self.email})>"


class Profile(Base):
    """Profile stub; full profile editing lives outside the auth core."""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    first_name = Column(String(100), nullable=True)
    middle_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="profile")

    def __repr__(self):
        return f"<Profile(account_id={self.account_id})>"
