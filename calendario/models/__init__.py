"""
Client Milestone Calendar
SQLAlchemy extension instance.

All model modules import ``db`` from here; ``create_app`` binds it.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
