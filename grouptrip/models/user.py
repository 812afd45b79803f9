"""User ORM model for people planning vacations together."""

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouptrip.models import Base, BaseModel


class User(Base, BaseModel):
    """
    A person who can create groups and join them as a member.

    Authentication data lives outside this component; only the identity
    fields consumed by the read models (name, avatar) are kept here.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Login email, unique across the system",
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name shown on calendars and expense summaries",
    )
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Avatar image URL (file storage is handled elsewhere)",
    )

    # Relationships
    memberships: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="user",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_users_email", "email"),)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, name={self.name})>"


__all__ = ["User"]
