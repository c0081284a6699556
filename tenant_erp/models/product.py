"""Product model."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, Text, DateTime, ForeignKey, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


product_category = Table(
    'product_category',
    Base.metadata,
    Column('product_id', IdType, ForeignKey('product.id', ondelete='CASCADE'), primary_key=True),
    Column('category_id', IdType, ForeignKey('category.id', ondelete='CASCADE'), primary_key=True),
)


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_key = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    short_description = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False)
    sale_price = Column(Numeric(10, 2), nullable=True)
    sku = Column(String(100), nullable=True, unique=True)
    brand = Column(String(100), nullable=True, index=True)
    image_path = Column(String(255), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    featured = Column(Boolean, nullable=False, default=False)
    is_home_view = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default='active')  # active, inactive, draft
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    categories = relationship('Category', secondary=product_category, back_populates='products')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    @property
    def effective_price(self):
        """Sale price when set, otherwise base price."""
        return self.sale_price if self.sale_price is not None else self.base_price

    @property
    def stock_status(self):
        if self.stock_quantity <= 0:
            return 'out_of_stock'
        if self.stock_quantity <= self.low_stock_threshold:
            return 'low_stock'
        return 'in_stock'
