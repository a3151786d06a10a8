from sqlalchemy import Boolean, Column, Integer, String

from app.database import Base


class Category(Base):
    """A collectable marketplace category (tap.az `/elanlar/<slug>`)."""
    __tablename__ = "categories"

    slug = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    parent_slug = Column(String(255), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
