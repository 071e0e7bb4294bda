"""
Challenge Review Service
SQLAlchemy models package.

Every model module imports the shared ``db`` handle from here:

    from app.models import db
"""

import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_id() -> str:
    """Short opaque primary key used by all review-domain tables."""
    return uuid.uuid4().hex[:14]
