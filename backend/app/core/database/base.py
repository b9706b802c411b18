# backend/app/core/database/base.py
"""
SQLAlchemy declarative base shared by all DocVault models.
"""

from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()
