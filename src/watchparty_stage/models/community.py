"""SQLAlchemy models for per-community configuration."""
from sqlalchemy import BigInteger, Boolean, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from watchparty_stage.db.session import Base


class CommunityConfig(Base):
    """Vote cap overrides for one community.

    Null columns fall back to the application-wide settings.
    """

    __tablename__ = "community_config"

    community_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    vote_cap_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    vote_cap_ratio_up: Mapped[float | None] = mapped_column(Float, nullable=True)
    vote_cap_ratio_down: Mapped[float | None] = mapped_column(Float, nullable=True)
    vote_cap_minimum: Mapped[int | None] = mapped_column(Integer, nullable=True)
