from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from ..database import Base


class Click(Base):
    """Click statistics model, one row per redirect attempt"""
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    clicked_at = Column(DateTime(timezone=True), server_default=func.now())
    referrer = Column(String(512), nullable=True)
    user_agent = Column(String(512), nullable=True)

    # Relationship with link
    link = relationship("Link", back_populates="clicks")

    def __repr__(self):
        return f"<Click {self.id} for link {self.link_id}>"
