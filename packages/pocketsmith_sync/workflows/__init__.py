"""Workflow orchestrators composing the clients, matcher and reconciler."""

from .sync_flow import AccountResult, AccountStatus, SyncSummary, run_sync, sync_account

__all__ = ["AccountResult", "AccountStatus", "SyncSummary", "run_sync", "sync_account"]
