# screen_monitor/models/user.py
"""
Users (repair technicians, company managers, administrators) and the
companies that own screens. Only the contact fields matter to the core:
notifications are addressed by email and Telegram chat id.
"""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from screen_monitor.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200))
    email = Column(String(255))
    telegram_id = Column(String(64))
    role = Column(String(50), default="technician", nullable=False)   # technician | manager | admin

    def __repr__(self):
        return f"<User {self.id} role={self.role}>"


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    manager_id = Column(Integer, ForeignKey("users.id"))

    manager = relationship("User")

    def __repr__(self):
        return f"<Company {self.id} {self.name}>"
