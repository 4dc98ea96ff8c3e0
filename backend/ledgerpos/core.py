# Overview: Per-app container for the ledger core components (no module-level singletons).

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .extensions import db
from .services.balance_engine import BalanceEngine
from .services.ledger_store import LocalLedgerStore
from .services.outbox_service import OutboxQueue
from .services.remote_store import RemoteStore
from .services.sales_service import Cart
from .services.sync_service import SyncEngine, SyncSettings, SyncWorker

EXTENSION_KEY = "ledgerpos"


@dataclass
class LedgerCore:
    store: LocalLedgerStore
    engine: BalanceEngine
    outbox: OutboxQueue
    remote: RemoteStore
    sync: SyncEngine
    company_id: str
    branch_id: str
    device_id: str
    user_id: str | None = None
    default_bag_size_kg: float = 50.0
    worker: SyncWorker | None = None

    def new_cart(self) -> Cart:
        return Cart(default_bag_size_kg=self.default_bag_size_kg)


def build_core(app, *, online_check=None) -> LedgerCore:
    """Construct the components for ``app``; must run inside its app context."""
    config = app.config
    settings = SyncSettings.from_config(config)

    store = LocalLedgerStore()
    engine = BalanceEngine(
        store,
        default_branch_id=config["BRANCH_ID"],
        lazy_load=bool(config.get("ENGINE_LAZY_LOAD", True)),
    )
    outbox = OutboxQueue(store)
    remote = RemoteStore(db.engines["remote"])
    sync = SyncEngine(outbox, remote, settings, online_check=online_check)

    return LedgerCore(
        store=store,
        engine=engine,
        outbox=outbox,
        remote=remote,
        sync=sync,
        company_id=config["COMPANY_ID"],
        branch_id=config["BRANCH_ID"],
        device_id=config["DEVICE_ID"],
        user_id=config.get("USER_ID"),
        default_bag_size_kg=float(config.get("DEFAULT_BAG_SIZE_KG", 50.0)),
    )


def get_core(app=None) -> LedgerCore:
    target = app or current_app
    return target.extensions[EXTENSION_KEY]
