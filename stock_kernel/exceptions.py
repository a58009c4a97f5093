"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, operator tooling) must react to ledger failures
precisely: an exit that overdraws stock is a user-facing 409, a missing
material is a 404, a concurrency conflict is retried.  Parsing message
strings for that is fragile, so every error:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        ledger.record_movement(...)
    except InsufficientStockError as e:
        api_response(409, code=e.code, requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |
    +-- MaterialError
    |   +-- MaterialNotFoundError
    |   +-- InsufficientStockError
    |
    +-- CategoryNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ReconciliationDriftDetected   (informational)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | When Raised
----------------|------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR       | Missing/invalid field or counterpart
                | INVALID_QUANTITY       | Quantity not a positive integer
----------------|------------------------|-----------------------------------------
Material        | MATERIAL_NOT_FOUND     | No such material for this owner
                | INSUFFICIENT_STOCK     | Exit exceeds available stock
----------------|------------------------|-----------------------------------------
Category        | CATEGORY_NOT_FOUND     | No such category for this owner
----------------|------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT   | Retries exhausted on a contended material
----------------|------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION | Fact modified/deleted, or projection
                |                        | written outside the sanctioned writers
----------------|------------------------|-----------------------------------------
Reconciliation  | RECONCILIATION_DRIFT   | Projection differed from replay
                |                        | (only raised on explicit request)

===============================================================================
"""

from uuid import UUID


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation exceptions


class ValidationError(StockKernelError):
    """Malformed movement input (no fact is written)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidQuantityError(ValidationError):
    """Quantity is not a strictly positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__("quantity", f"must be a positive integer, got {quantity!r}")


# Material exceptions


class MaterialError(StockKernelError):
    """Base exception for material-related errors."""

    code: str = "MATERIAL_ERROR"


class MaterialNotFoundError(MaterialError):
    """Material does not exist or is not visible to the owner."""

    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: UUID | str, owner_id: str):
        self.material_id = str(material_id)
        self.owner_id = owner_id
        super().__init__(f"Material not found: {material_id} (owner {owner_id})")


class InsufficientStockError(MaterialError):
    """Non-return exit requests more than the stock available at its date."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, material_id: UUID | str, requested: int, available: int):
        self.material_id = str(material_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for material {material_id}: "
            f"requested {requested}, available {available}"
        )


class CategoryNotFoundError(StockKernelError):
    """Category does not exist or is not visible to the owner."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: UUID | str, owner_id: str):
        self.category_id = str(category_id)
        self.owner_id = owner_id
        super().__init__(f"Category not found: {category_id} (owner {owner_id})")


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Contended write still conflicting after the bounded retries."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, entity_id: str, attempts: int):
        self.operation = operation
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrency conflict on {operation} for {entity_id}: "
            f"gave up after {attempts} attempts"
        )


# Immutability exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record, or to write the
    stock projection outside the movement ledger and reconciliation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Reconciliation


class ReconciliationDriftDetected(StockKernelError):
    """
    The stored projection differed from the replayed fact history.

    Informational: reconciliation corrects drift and reports it.  This is
    only raised when a caller asks for drift to be treated as a failure
    (ReconciliationReport.raise_for_drift()).
    """

    code: str = "RECONCILIATION_DRIFT"

    def __init__(self, owner_id: str, materials_corrected: int, material_ids: list[str]):
        self.owner_id = owner_id
        self.materials_corrected = materials_corrected
        self.material_ids = material_ids
        super().__init__(
            f"Stock drift detected for owner {owner_id}: "
            f"{materials_corrected} material(s) corrected"
        )
