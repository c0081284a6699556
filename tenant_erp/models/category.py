"""Category model."""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class Category(Base):
    """Product category; categories nest through ``parent_id``."""

    __tablename__ = 'category'

    id = Column(IdType, primary_key=True, autoincrement=True)
    category_key = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(IdType, ForeignKey('category.id'), nullable=True, index=True)
    image_url = Column(String(255), nullable=True)
    icon = Column(String(100), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default='active')  # active, inactive
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    parent = relationship('Category', remote_side=[id], back_populates='children')
    children = relationship('Category', back_populates='parent')
    products = relationship('Product', secondary='product_category', back_populates='categories')

    def __repr__(self):
        return f"<Category(id={self.id}, key='{self.category_key}')>"
