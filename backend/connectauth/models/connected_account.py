"""Connections between local users and external provider identities."""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from connectauth.database import Base


class ConnectedAccount(Base):
    """One provider identity linked to one local user."""

    __tablename__ = "connected_accounts"
    __table_args__ = (
        # One connection per provider per user
        UniqueConstraint("user_id", "provider", name="uq_connected_accounts_user_provider"),
        # A provider identity can never point at two users
        UniqueConstraint("provider", "provider_user_id", name="uq_connected_accounts_provider_identity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    provider_username: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    user: Mapped["User"] = relationship("User", back_populates="connected_accounts")

    def __repr__(self) -> str:
        return f"<ConnectedAccount {self.provider}:{self.provider_user_id}>"
