"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy, marshmallow and the notification dispatcher as
module-level objects so they can be imported anywhere without creating
circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db`, `ma` or `notifications` from here wherever needed.

    from roomledger.app.extensions import db, ma, notifications
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from roomledger.app.services.notification_service import NotificationDispatcher

db = SQLAlchemy()

# Marshmallow instance, available for model serialization helpers.
#
# IMPORTANT: schema inheritance rule.
#   All validation Schema classes (in app/schemas/) inherit from
#   marshmallow.Schema directly, NOT from ma.Schema. ma.Schema requires an
#   active Flask application context, and the unit tests run without one.
ma = Marshmallow()

# Fire-and-forget notification sink. Routes call it after commit.
notifications = NotificationDispatcher()
