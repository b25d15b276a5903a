"""
Typed Exception Hierarchy for the Workwear Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval screens, bulk-approval reports and API layers all need to tell
"the PR number was blank" apart from "another admin already approved this
order".  Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way:
    try:
        approvals.approve(order_id, actor, pr_number, pr_date)
    except Exception as e:
        if "required" in str(e):
            ...

Example - RIGHT way:
    try:
        approvals.approve(order_id, actor, pr_number, pr_date)
    except MissingApprovalFieldError as e:
        api_response(code=e.code, field=e.field_name)
    except InvalidOrderTransitionError as e:
        api_response(code=e.code, current=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkwearKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingApprovalFieldError
    |   +-- InvalidQuantityError
    |   +-- UnknownSizeError
    |   +-- EmptyCartError
    |   +-- MultiplePRsNotAllowedError
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- CompanyNotFoundError
    |
    +-- ConflictError
    |   +-- InvalidOrderTransitionError
    |   +-- ConcurrentUpdateError
    |
    +-- DependencyError
    |   +-- VendorUnresolvedError
    |   +-- CatalogUnavailableError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActorError
    |
    +-- OperationCancelledError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|-----------------------------------
Validation    | MISSING_APPROVAL_FIELD       | PR/PO number or date blank
              | INVALID_QUANTITY             | Cart quantity is negative
              | UNKNOWN_SIZE                 | Size not offered for product
              | EMPTY_CART                   | No positive-quantity cart line
              | MULTIPLE_PRS_NOT_ALLOWED     | Many PRs into one PO, disallowed
--------------|------------------------------|-----------------------------------
Not found     | ORDER_NOT_FOUND              | Order id doesn't exist
              | EMPLOYEE_NOT_FOUND           | Employee has no entitlement record
              | COMPANY_NOT_FOUND            | No policy for company
--------------|------------------------------|-----------------------------------
Conflict      | INVALID_ORDER_TRANSITION     | Status does not permit action
              | CONCURRENT_UPDATE            | Lost a race on a conditional write
--------------|------------------------------|-----------------------------------
Dependency    | VENDOR_UNRESOLVED            | No vendor for a cart product
              | CATALOG_UNAVAILABLE          | Catalog raised / malformed data
--------------|------------------------------|-----------------------------------
Authorization | UNAUTHORIZED_ACTOR           | Role may not perform action
--------------|------------------------------|-----------------------------------
Cancellation  | CANCELLED                    | Bulk run cancelled or timed out

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SINGLE APPROVAL aborts on the first typed error; nothing is written.

2. BULK APPROVAL converts each per-order error into a failure entry:

    except WorkwearKernelError as e:
        failed.append(BulkFailure(order_id, str(e), e.code))

3. CONCURRENT UPDATES are retryable:

    except ConcurrentUpdateError:
        session.rollback()
        # re-read and try again

===============================================================================
"""


class WorkwearKernelError(Exception):
    """
    Base exception for all workwear kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "WORKWEAR_KERNEL_ERROR"


# Validation errors


class ValidationError(WorkwearKernelError):
    """Base exception for rejected input (precondition failures)."""

    code: str = "VALIDATION_ERROR"


class MissingApprovalFieldError(ValidationError):
    """A required approval field (PR/PO number or date) is missing or blank."""

    code: str = "MISSING_APPROVAL_FIELD"

    def __init__(self, field_name: str, label: str):
        self.field_name = field_name
        self.label = label
        super().__init__(f"{label} is required")


class InvalidQuantityError(ValidationError):
    """Cart quantity is not a usable non-negative integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, product_id: str, quantity: int):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__(
            f"Invalid quantity {quantity} for product {product_id}"
        )


class UnknownSizeError(ValidationError):
    """Requested size is not offered for the product."""

    code: str = "UNKNOWN_SIZE"

    def __init__(self, product_id: str, size: str):
        self.product_id = product_id
        self.size = size
        super().__init__(f"Size '{size}' is not available for product {product_id}")


class EmptyCartError(ValidationError):
    """The cart has no line with a positive quantity."""

    code: str = "EMPTY_CART"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Cart for employee {employee_id} has no items to order")


class MultiplePRsNotAllowedError(ValidationError):
    """Several PRs were grouped into one PO but the company forbids it."""

    code: str = "MULTIPLE_PRS_NOT_ALLOWED"

    def __init__(self, po_number: str, pr_numbers: list[str]):
        self.po_number = po_number
        self.pr_numbers = pr_numbers
        super().__init__(
            f"PO {po_number} cannot group multiple PRs: {', '.join(pr_numbers)}"
        )


# Not-found errors


class NotFoundError(WorkwearKernelError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Order with given id was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class EmployeeNotFoundError(NotFoundError):
    """Employee has no entitlement record."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class CompanyNotFoundError(NotFoundError):
    """No policy is configured for the company."""

    code: str = "COMPANY_NOT_FOUND"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


# Conflict errors


class ConflictError(WorkwearKernelError):
    """Base exception for state conflicts."""

    code: str = "CONFLICT"


class InvalidOrderTransitionError(ConflictError):
    """The order's current state does not permit the requested action."""

    code: str = "INVALID_ORDER_TRANSITION"

    def __init__(
        self,
        order_id: str,
        current_status: str,
        action: str,
        pr_status: str | None = None,
    ):
        self.order_id = order_id
        self.current_status = current_status
        self.action = action
        self.pr_status = pr_status
        detail = f"status '{current_status}'"
        if pr_status:
            detail += f", PR status '{pr_status}'"
        super().__init__(f"Cannot {action} order {order_id} in {detail}")


class ConcurrentUpdateError(ConflictError):
    """A conditional write lost a race with another transaction."""

    code: str = "CONCURRENT_UPDATE"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent update on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Dependency errors


class DependencyError(WorkwearKernelError):
    """Base exception for collaborator failures (catalog, entitlement provider)."""

    code: str = "DEPENDENCY_ERROR"


class VendorUnresolvedError(DependencyError):
    """A cart product could not be resolved to a vendor."""

    code: str = "VENDOR_UNRESOLVED"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Cannot resolve vendor for product {product_id}: {reason}")


class CatalogUnavailableError(DependencyError):
    """The product catalog failed or returned malformed data."""

    code: str = "CATALOG_UNAVAILABLE"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Catalog lookup failed for product {product_id}: {reason}")


# Authorization errors


class AuthorizationError(WorkwearKernelError):
    """Base exception for actions outside the caller's asserted role."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActorError(AuthorizationError):
    """Actor's role is not allowed to perform the action."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_email: str, role: str, action: str):
        self.actor_email = actor_email
        self.role = role
        self.action = action
        super().__init__(f"{actor_email} ({role}) is not allowed to {action}")


# Cancellation


class OperationCancelledError(WorkwearKernelError):
    """A bulk operation was cancelled or ran past its deadline before this item."""

    code: str = "CANCELLED"

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Not processed ({reason}): {item_id}")
