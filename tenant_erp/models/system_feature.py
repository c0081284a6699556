"""Feature catalog models - systems and the modules they contain."""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class SystemFeature(Base):
    """A top-level feature system (e.g. library_management)."""

    __tablename__ = 'system_feature'

    id = Column(IdType, primary_key=True, autoincrement=True)
    system_key = Column(String(100), nullable=False, unique=True)
    system_name = Column(String(200), nullable=False)
    system_description = Column(Text, nullable=True)
    system_icon = Column(String(100), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default='active')  # active, inactive
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    modules = relationship(
        'FeatureModule',
        back_populates='system',
        cascade='all, delete-orphan',
        order_by='FeatureModule.display_order, FeatureModule.id'
    )

    def __repr__(self):
        return f"<SystemFeature(id={self.id}, key='{self.system_key}')>"

    @property
    def is_active(self):
        return self.status == 'active'


class FeatureModule(Base):
    """A module inside a feature system (e.g. book_catalog)."""

    __tablename__ = 'feature_module'
    __table_args__ = (
        UniqueConstraint('system_id', 'module_key', name='uq_feature_module_system_key'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    system_id = Column(IdType, ForeignKey('system_feature.id', ondelete='CASCADE'), nullable=False)
    module_key = Column(String(100), nullable=False)
    module_name = Column(String(200), nullable=False)
    module_description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default='active')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    system = relationship('SystemFeature', back_populates='modules')

    def __repr__(self):
        return f"<FeatureModule(id={self.id}, key='{self.module_key}', system_id={self.system_id})>"

    def as_selected_module(self):
        """Shape used inside feature trees."""
        return {
            'key': self.module_key,
            'name': self.module_name,
            'description': self.module_description or self.module_name
        }
