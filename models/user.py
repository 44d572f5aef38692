# models/user.py
from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from .base import Base


class User(Base):
     """
     User model - central authentication table.
     Maps to the existing 'users' table; only the columns needed to stamp
     ownership on payments are mapped here.
     """
     __tablename__ = "users"

     id = Column(Integer, primary_key=True, autoincrement=True)
     email = Column(String(255), unique=True, nullable=False, index=True)
     first_name = Column(String(100), nullable=True)
     last_name = Column(String(100), nullable=True)
     role = Column(String(50), nullable=False, default="tenant")  # admin, manager, owner, tenant
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     tenant = relationship("Tenant", back_populates="user", uselist=False)
     payments = relationship("Payment", back_populates="user")

     def __repr__(self):
          return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
