"""
NETA Ops — database models.

A single Flask-SQLAlchemy instance shared by every model module.
Import model modules through ``neta_ops.models.<module>``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
