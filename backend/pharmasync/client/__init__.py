from .api import SyncApiClient
from .ledger import LocalLedger, OutboxEntry
from .sync_worker import SyncReport, SyncWorker

__all__ = ["LocalLedger", "OutboxEntry", "SyncApiClient", "SyncReport", "SyncWorker"]
