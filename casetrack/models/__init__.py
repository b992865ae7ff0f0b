"""
CaseTrack
Database instance shared by every model module.

Usage:
    from casetrack.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
