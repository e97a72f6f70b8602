from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from unievent.core.database import Base


class UserRole(str, Enum):
    PARTICIPANT = "participant"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class User(Base):
    """
    Platform account. Participants enroll, organizers own events,
    admins operate the platform (status scheduler, cancellations).

    Columns:
      id             INT  — auto-increment primary key
      name           TEXT — display name
      email          TEXT — unique login email
      password_hash  TEXT — bcrypt hash (plaintext never stored)
      role           TEXT — participant / organizer / admin
      is_active      BOOL — False = account disabled, cannot login
      last_login_at  TS   — updated on every successful login
      created_at     TS   — when the row was created
    """
    __tablename__ = "users"

    id:            Mapped[int]             = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    name:          Mapped[str]             = mapped_column(String(255), nullable=False)
    email:         Mapped[str]             = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str]             = mapped_column(Text, nullable=False)
    role:          Mapped[str]             = mapped_column(String(20), nullable=False, default=UserRole.PARTICIPANT.value, server_default=UserRole.PARTICIPANT.value)
    is_active:     Mapped[bool]            = mapped_column(Boolean, default=True, nullable=False, server_default="true")
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at:    Mapped[datetime]        = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
