"""
Auth models for session management and single-use tokens.

RefreshSession: Refresh token hash per login session
SingleUseToken: Password reset / email verification tokens
RateLimitCounter: Fixed-window action counters
"""

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    String,
    Boolean,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from db.engine import Base


class RefreshSession(Base):
    """
    Refresh session for one login/device.

    Holds only the hash of the current refresh token.
    """
    __tablename__ = "refresh_sessions"

    session_id = Column(String(64), primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(String(64), nullable=False)
    issued_at = Column(Integer, nullable=False)  # Unix timestamp
    expires_at = Column(Integer, nullable=False)  # Unix timestamp
    revoked = Column(Boolean, nullable=False, default=False)

    # Relationship
    account = relationship("Account", back_populates="refresh_sessions")

    def __repr__(self):
        return f"<RefreshSession(session_id={self.session_id}, account_id={self.account_id})>"


class SingleUseToken(Base):
    """
    Hashed, time-boxed token that authorizes one state change.
    """
    __tablename__ = "single_use_tokens"

    token_hash = Column(String(64), primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    purpose = Column(String(32), nullable=False)
    created_at = Column(Integer, nullable=False)  # Unix timestamp
    expires_at = Column(Integer, nullable=False, index=True)  # Unix timestamp
    consumed_at = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<SingleUseToken(hash={self.token_hash[:8]}..., purpose={self.purpose})>"


class RateLimitCounter(Base):
    """Fixed-window counter keyed by actor and action."""
    __tablename__ = "rate_limit_counters"

    key = Column(String(255), primary_key=True)
    window_start_ms = Column(BigInteger, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    limit = Column(Integer, nullable=False)
    window_ms = Column(BigInteger, nullable=False)

    def __repr__(self):
        return f"<RateLimitCounter(key={self.key}, count={self.count})>"
