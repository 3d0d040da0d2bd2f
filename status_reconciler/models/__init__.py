"""
Status Reconciler
Database instance shared by every model module.

Usage:
    from status_reconciler.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
