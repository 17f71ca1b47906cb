"""
routes/ledger_context.py — Per-request wiring of the ledger collaborators.

Builds the SQL-backed directory, store and SettlementManager once per request
and caches them on flask.g. Services never import this module; routes pass
the objects down as plain arguments.
"""

from __future__ import annotations

from flask import current_app, g

from groupledger.app.extensions import db, snapshot_hub
from groupledger.app.services.settlement_service import SettlementManager
from groupledger.app.store.sql import SqlLedgerStore, SqlMembershipDirectory

NOTIFIER_EXTENSION = "groupledger.notifier"


def get_directory() -> SqlMembershipDirectory:
    if "ledger_directory" not in g:
        g.ledger_directory = SqlMembershipDirectory(db.session)
    return g.ledger_directory


def get_manager() -> SettlementManager:
    if "ledger_manager" not in g:
        directory = get_directory()
        store = SqlLedgerStore(db.session, hub=snapshot_hub, directory=directory)
        g.ledger_manager = SettlementManager(
            store,
            directory,
            step_up_threshold=current_app.config["STEP_UP_VERIFICATION_THRESHOLD"],
            max_attempts=current_app.config["SETTLEMENT_CAS_MAX_ATTEMPTS"],
            notifier=current_app.extensions.get(NOTIFIER_EXTENSION),
        )
    return g.ledger_manager
