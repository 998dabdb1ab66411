"""
extensions.py — Flask extension singletons.

Created here without an app and bound in the factory via init_app(), so
tests can build isolated app instances:

    from foodhunt.app.extensions import db, ma

Validation schemas in app/schemas/ inherit from marshmallow.Schema directly,
never ma.Schema: ma.Schema needs an application context and the unit tests
in tests/unit/ run without one.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ma = Marshmallow()
