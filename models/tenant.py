from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class Tenant(Base):
     """
     Tenant model - the billing party for invoices and payments.
     Maps to existing 'tenants' table in the database.
     """
     __tablename__ = "tenants"

     tenant_id = Column(Integer, primary_key=True, autoincrement=True)
     user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

     # Personal info
     first_name = Column(String(100), nullable=False)
     last_name = Column(String(100), nullable=False)
     email = Column(String(255), nullable=False)
     contact_number = Column(String(50), nullable=True)  # free text, normalized before STK push

     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     user = relationship("User", back_populates="tenant")
     invoices = relationship("Invoice", back_populates="tenant")
     payments = relationship("Payment", back_populates="tenant")

     def __repr__(self):
          return f"<Tenant(tenant_id={self.tenant_id}, name='{self.first_name} {self.last_name}')>"

     @property
     def display_name(self) -> str:
          return f"{self.first_name} {self.last_name}".strip()
