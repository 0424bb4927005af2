from datetime import datetime
from datetime import timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field
from sqlmodel import SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin(SQLModel):
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        nullable=True,
    )

    def touch(self) -> None:
        self.updated_at = utcnow()
