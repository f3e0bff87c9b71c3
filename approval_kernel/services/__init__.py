"""Services for the approval kernel (write side)."""

from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.expiry_sweeper import ExpirySweeper, SweepResult
from approval_kernel.services.notifications import (
    ApprovalNotifier,
    NullNotifier,
    RecordingNotifier,
    dispatch_notification,
)

__all__ = [
    "ApprovalNotifier",
    "ApprovalService",
    "ExpirySweeper",
    "NullNotifier",
    "RecordingNotifier",
    "SweepResult",
    "dispatch_notification",
]
