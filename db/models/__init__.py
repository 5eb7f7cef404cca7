"""
SQLAlchemy models for the auth core.

All models inherit from db.engine.Base for Alembic migrations.
"""

from db.models.user import Account, Profile
from db.models.auth import RefreshSession, SingleUseToken, RateLimitCounter

__all__ = [
    # Accounts
    "Account",
    "Profile",
    # Auth
    "RefreshSession",
    "SingleUseToken",
    "RateLimitCounter",
]
