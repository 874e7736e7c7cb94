"""
Shared SQLAlchemy handle.

Bound to the Flask app in create_app(); models import `db` from here.
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
