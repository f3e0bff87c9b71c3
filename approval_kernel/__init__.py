"""
Approval Kernel

Multi-tier approval workflow engine for branch operations:
- Amount-based required-tier selection
- Single-step resolution by any adequately ranked actor
- Escalation through a global tier hierarchy
- Append-only audit trail embedded in every request
- Atomic compare-and-swap transitions and a best-effort expiry sweep
"""

__version__ = "0.1.0"
