"""
Database models package.

Models import ``db`` from here:
    from segflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
