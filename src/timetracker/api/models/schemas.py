"""
Pydantic schemas for the TimeTracker sync API
"""

from typing import Optional

from pydantic import BaseModel

from ...services.worklog_sync import SyncReport


# ============================================================
# Worklog Sync Schemas
# ============================================================

class EntrySyncResult(BaseModel):
    """Outcome for a single entry"""
    entry_id: int
    status: str  # "created", "updated", "deleted", "skipped", "error"
    ticket: Optional[str] = None
    worklog_id: Optional[int] = None
    error_message: Optional[str] = None


class SyncResponse(BaseModel):
    """Batch sync response"""
    success: bool
    ticket_system_id: int
    total_entries: int
    successful: int
    failed: int
    results: list[EntrySyncResult]
    cancelled: bool = False
    sync_enabled: bool = True
    redirect_url: Optional[str] = None

    @classmethod
    def from_report(cls, report: SyncReport) -> "SyncResponse":
        results = [
            EntrySyncResult(entry_id=entry_id, status=outcome.value)
            for entry_id, outcome in report.outcomes.items()
        ]
        results.extend(
            EntrySyncResult(
                entry_id=failure.entry_id,
                status="error",
                ticket=failure.ticket,
                error_message=failure.message,
            )
            for failure in report.failures
        )
        return cls(
            success=report.ok,
            ticket_system_id=report.ticket_system_id,
            total_entries=report.total,
            successful=len(report.outcomes),
            failed=len(report.failures),
            results=results,
            cancelled=report.cancelled,
            sync_enabled=not report.gated,
            redirect_url=report.authorize_url,
        )


# ============================================================
# General Response Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Error response"""
    error: str
    message: str
    redirect_url: Optional[str] = None
