"""SQLAlchemy Models for stored assets."""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase

from atrest.adapters.postgres.types import EncryptedEnum, EncryptedText, retain_prior_on_null
from atrest.domain.assets.models import StoredAsset
from atrest.domain.keys.models import KeyProvider


class Base(DeclarativeBase):
    pass


class AssetRecord(Base):
    """File metadata row. ``filename`` gains ``.enc`` once the bytes are encrypted."""
    __tablename__ = "assets"
    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    directory = Column(String(1024), nullable=False, default="")
    title = Column(EncryptedText(), nullable=True)
    visibility = Column(EncryptedEnum("private", "internal", "public"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_asset(self, key_provider: Optional[KeyProvider] = None) -> StoredAsset:
        return StoredAsset(
            name=self.filename,
            directory=self.directory or "",
            key_provider=key_provider,
        )


retain_prior_on_null(AssetRecord.title)
retain_prior_on_null(AssetRecord.visibility)
