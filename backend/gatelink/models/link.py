import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, func
from sqlalchemy.orm import relationship
from ..database import Base


def _new_link_id() -> str:
    return str(uuid.uuid4())


class Link(Base):
    """Short link model"""
    __tablename__ = "links"

    id = Column(String(36), primary_key=True, default=_new_link_id)
    short_code = Column(String(20), unique=True, index=True, nullable=False)
    original_url = Column(String(2048), nullable=False)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL = never expires
    is_active = Column(Boolean, default=True, nullable=False)
    clicks_count = Column(Integer, default=0, nullable=False)
    creator_wallet = Column(String(42), nullable=True, index=True)  # NULL = anonymous
    access_policy = Column(JSON, nullable=True)  # {type, contractAddress, minBalance, chainId}

    # Relationship with clicks
    clicks = relationship("Click", back_populates="link", cascade="all, delete-orphan")

    @property
    def is_gated(self) -> bool:
        return bool(self.access_policy)

    def __repr__(self):
        return f"<Link {self.short_code} -> {self.original_url}>"
