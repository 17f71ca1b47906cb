"""
extensions.py — Flask extension singletons.

Created here without an app and bound in the app factory via init_app(), so
they can be imported anywhere without circular imports:

    from groupledger.app.extensions import db, ma, snapshot_hub

Validation schemas in app/schemas/ inherit from marshmallow.Schema directly,
not ma.Schema: ma.Schema needs an application context and the unit tests run
without one.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from groupledger.app.store.updates import SnapshotHub

db = SQLAlchemy()

ma = Marshmallow()

# Process-wide fan-out of ledger snapshots. Every request-scoped SqlLedgerStore
# publishes here, so a BalanceFeed subscribed in one thread sees writes made
# by any request.
snapshot_hub = SnapshotHub()
