"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI layers, batch jobs) must react to approval failures precisely.
Every error here has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        service.approve(request_id, actor_id, name, role)
    except UnauthorizedApproverError as e:
        api_response(code=e.code, required=e.required_tier)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalNotPendingError
    |   +-- NoTierAssignedError
    |   +-- UnauthorizedApproverError
    |   +-- CannotEscalateFurtherError
    |   +-- InvalidReasonError
    |   +-- UnknownApprovalTypeError
    |   +-- InvalidAmountError
    |
    +-- StorageError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised
--------------------------|----------------------------------------------------
APPROVAL_NOT_FOUND        | request_id does not resolve to a stored request
APPROVAL_NOT_PENDING      | approve/reject/escalate on a resolved request
NO_TIER_ASSIGNED          | actor's role maps to no authority tier
UNAUTHORIZED_APPROVER     | actor's tier ranks below the request's current tier
CANNOT_ESCALATE_FURTHER   | escalation while already at the top tier
INVALID_REASON            | reject with an empty or too-short reason
UNKNOWN_APPROVAL_TYPE     | create with a type outside the configured set
INVALID_AMOUNT            | amount is not a finite decimal (NaN, Infinity, junk)
STORAGE_ERROR             | the underlying store failed
OPTIMISTIC_LOCK_CONFLICT  | write lost every retry to concurrent writers
IMMUTABILITY_VIOLATION    | in-place edit of history or of a resolved request
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Approval workflow exceptions


class ApprovalError(ApprovalKernelError):
    """Base exception for expected, recoverable approval workflow errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval request with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class ApprovalNotPendingError(ApprovalError):
    """Action requires a pending request but the request is resolved."""

    code: str = "APPROVAL_NOT_PENDING"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Approval request {request_id} is already {status}")


class NoTierAssignedError(ApprovalError):
    """Actor's role maps to no authority tier."""

    code: str = "NO_TIER_ASSIGNED"

    def __init__(self, actor_id: str, role: str):
        self.actor_id = actor_id
        self.role = role
        super().__init__(
            f"Role '{role}' of actor {actor_id} has no approval tier"
        )


class UnauthorizedApproverError(ApprovalError):
    """Actor's tier ranks below the tier the request currently requires."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        request_id: str,
        actor_id: str,
        actor_tier: str,
        required_tier: str,
    ):
        self.request_id = request_id
        self.actor_id = actor_id
        self.actor_tier = actor_tier
        self.required_tier = required_tier
        super().__init__(
            f"Actor {actor_id} (tier {actor_tier}) cannot resolve request "
            f"{request_id}: requires {required_tier} or higher"
        )


class CannotEscalateFurtherError(ApprovalError):
    """Escalation attempted while already at the highest tier."""

    code: str = "CANNOT_ESCALATE_FURTHER"

    def __init__(self, request_id: str, current_tier: str):
        self.request_id = request_id
        self.current_tier = current_tier
        super().__init__(
            f"Cannot escalate request {request_id} further: "
            f"already at highest tier {current_tier}"
        )


class InvalidReasonError(ApprovalError):
    """Rejection reason is missing or shorter than the policy minimum."""

    code: str = "INVALID_REASON"

    def __init__(self, reason: str | None, min_length: int):
        self.reason = reason
        self.min_length = min_length
        super().__init__(
            f"Rejection reason must be at least {min_length} characters"
        )


class UnknownApprovalTypeError(ApprovalError):
    """Approval type is not part of the configured workflow registry."""

    code: str = "UNKNOWN_APPROVAL_TYPE"

    def __init__(self, approval_type: str):
        self.approval_type = approval_type
        super().__init__(f"Unknown approval type: {approval_type}")


class InvalidAmountError(ApprovalError):
    """Amount cannot be compared against thresholds."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object):
        self.amount = str(amount)
        super().__init__(f"Amount must be a finite decimal, got {amount!r}")


# Storage exceptions


class StorageError(ApprovalKernelError):
    """
    The persistence layer failed (unavailable, constraint failure, ...).

    Kept apart from ApprovalError so callers never confuse a store outage
    with an authorization decision.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Concurrency exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict persisted through every retry."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to rewrite the audit trail or mutate a resolved request.

    Approval history is append-only; approved, rejected and expired
    requests are frozen.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
