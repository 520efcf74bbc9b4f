from roombook.sync.reconciliation import RoomSyncResult, SyncReport, run_reconciliation

__all__ = ["RoomSyncResult", "SyncReport", "run_reconciliation"]
