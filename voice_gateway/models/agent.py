from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voice_gateway.db.base import Base


class Agent(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # agent_<name>_<8 hex>
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    voice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)  # provider voice id
    settings: Mapped[dict] = mapped_column(JSON, default=dict)  # normalized VoiceSettings
    file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)  # stored voice sample
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships (rows removed by ON DELETE CASCADE in the database)
    generations: Mapped[list["Generation"]] = relationship(  # noqa: F821
        "Generation", back_populates="agent", passive_deletes=True
    )
