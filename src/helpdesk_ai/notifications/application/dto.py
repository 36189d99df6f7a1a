"""
Notification Application DTOs
=============================
"""

from pydantic import BaseModel, ConfigDict, Field

from helpdesk_ai.notifications.domain import BatchSummary


class BatchSummaryResponse(BaseModel):
    """Response model for one dispatcher batch."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    processed: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0, alias="successCount")
    failure_count: int = Field(..., ge=0, alias="failureCount")

    @classmethod
    def from_summary(cls, summary: BatchSummary) -> "BatchSummaryResponse":
        return cls(
            processed=summary.processed,
            success_count=summary.success_count,
            failure_count=summary.failure_count,
        )
