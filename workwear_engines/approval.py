"""
workwear_engines.approval -- Pure order and PR state-machine rules.

Responsibility:
    Decide, without touching storage, where a new order starts, whether a
    given action is permitted from a given state by a given role, what the
    resulting statuses are, and what status a split parent displays given
    its children.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workwear_kernel/domain/ types.

Invariants enforced:
    - Order status only moves forward along ORDER_WORKFLOW; ``Delivered``
      is terminal and nothing moves backwards.
    - PR status moves along PR_WORKFLOW; ``REJECTED`` and ``LINKED_TO_PO``
      are terminal.
    - "Partially Dispatched" / "Partially Delivered" are produced only by
      ``aggregate_status`` and are never valid stored states.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - Permission and precondition checks return ``TransitionCheck`` with
      ``allowed=False`` and a reason; they never raise.  Services convert
      a refusal into the typed exception.
    - ValueError from ``aggregate_status`` if called with no children.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from workwear_kernel.domain.orders import (
    ActorRole,
    DisplayStatus,
    OrderStatus,
    PRStatus,
    SourceType,
)
from workwear_kernel.domain.policy import CompanyPolicy
from workwear_kernel.domain.workflow import Guard, Transition, Workflow
from workwear_kernel.logging_config import get_logger

logger = get_logger("engines.approval")

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_LINK_PO = "link_po"
ACTION_PREPARE_DISPATCH = "prepare_dispatch"
ACTION_DISPATCH = "dispatch"
ACTION_DELIVER = "deliver"

FULFILMENT_ACTIONS = (ACTION_PREPARE_DISPATCH, ACTION_DISPATCH, ACTION_DELIVER)

_ADMINS = (ActorRole.SITE_ADMIN.value, ActorRole.COMPANY_ADMIN.value)
_FULFILLERS = (ActorRole.VENDOR.value, ActorRole.COMPANY_ADMIN.value)

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PR_DETAILS_PRESENT = Guard(
    name="pr_details_present",
    description="PR number and PR date are supplied and non-blank",
)

PO_DETAILS_PRESENT = Guard(
    name="po_details_present",
    description="PO number and PO date are supplied and non-blank",
)

COMPANY_ADMIN_STEP_REQUIRED = Guard(
    name="company_admin_step_required",
    description="Company requires Company Admin PO approval",
)

# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------

ORDER_WORKFLOW = Workflow(
    name="order",
    description="Order fulfilment lifecycle (standalone orders and split children)",
    initial_state=OrderStatus.AWAITING_APPROVAL,
    states=tuple(OrderStatus),
    transitions=(
        Transition(
            OrderStatus.AWAITING_APPROVAL, OrderStatus.AWAITING_FULFILMENT,
            action=ACTION_APPROVE, guard=PR_DETAILS_PRESENT, allowed_roles=_ADMINS,
        ),
        Transition(
            OrderStatus.AWAITING_FULFILMENT, OrderStatus.AWAITING_DISPATCH,
            action=ACTION_PREPARE_DISPATCH, allowed_roles=_FULFILLERS,
        ),
        Transition(
            OrderStatus.AWAITING_FULFILMENT, OrderStatus.DISPATCHED,
            action=ACTION_DISPATCH, allowed_roles=_FULFILLERS,
        ),
        Transition(
            OrderStatus.AWAITING_DISPATCH, OrderStatus.DISPATCHED,
            action=ACTION_DISPATCH, allowed_roles=_FULFILLERS,
        ),
        Transition(
            OrderStatus.DISPATCHED, OrderStatus.DELIVERED,
            action=ACTION_DELIVER, allowed_roles=_FULFILLERS,
        ),
    ),
    terminal_states=(OrderStatus.DELIVERED,),
)

PR_WORKFLOW = Workflow(
    name="purchase_requisition",
    description="PR lifecycle for PR/PO companies",
    initial_state=PRStatus.PENDING_SITE_ADMIN_APPROVAL,
    states=tuple(PRStatus),
    transitions=(
        Transition(
            PRStatus.PENDING_SITE_ADMIN_APPROVAL, PRStatus.SITE_ADMIN_APPROVED,
            action=ACTION_APPROVE, guard=PR_DETAILS_PRESENT, allowed_roles=_ADMINS,
        ),
        Transition(
            PRStatus.PENDING_SITE_ADMIN_APPROVAL, PRStatus.PENDING_COMPANY_ADMIN_APPROVAL,
            action=ACTION_APPROVE, guard=COMPANY_ADMIN_STEP_REQUIRED, allowed_roles=_ADMINS,
        ),
        Transition(
            PRStatus.PENDING_SITE_ADMIN_APPROVAL, PRStatus.REJECTED,
            action=ACTION_REJECT, allowed_roles=_ADMINS,
        ),
        Transition(
            PRStatus.PENDING_COMPANY_ADMIN_APPROVAL, PRStatus.REJECTED,
            action=ACTION_REJECT, allowed_roles=(ActorRole.COMPANY_ADMIN.value,),
        ),
        Transition(
            PRStatus.SITE_ADMIN_APPROVED, PRStatus.LINKED_TO_PO,
            action=ACTION_LINK_PO, guard=PO_DETAILS_PRESENT,
            allowed_roles=(ActorRole.COMPANY_ADMIN.value,),
        ),
        Transition(
            PRStatus.PENDING_COMPANY_ADMIN_APPROVAL, PRStatus.LINKED_TO_PO,
            action=ACTION_LINK_PO, guard=PO_DETAILS_PRESENT,
            allowed_roles=(ActorRole.COMPANY_ADMIN.value,),
        ),
        Transition(
            PRStatus.COMPANY_ADMIN_APPROVED, PRStatus.LINKED_TO_PO,
            action=ACTION_LINK_PO, guard=PO_DETAILS_PRESENT,
            allowed_roles=(ActorRole.COMPANY_ADMIN.value,),
        ),
    ),
    terminal_states=(PRStatus.LINKED_TO_PO, PRStatus.REJECTED),
)

logger.info(
    "approval_workflows_registered",
    extra={
        "workflows": [ORDER_WORKFLOW.name, PR_WORKFLOW.name],
        "order_transition_count": len(ORDER_WORKFLOW.transitions),
        "pr_transition_count": len(PR_WORKFLOW.transitions),
    },
)

_PROGRESS: dict[OrderStatus, int] = {status: rank for rank, status in enumerate(OrderStatus)}


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InitialStage:
    """Where a newly placed order starts, decided by company policy."""

    status: OrderStatus
    pr_status: PRStatus | None
    source_type: SourceType
    location_auto_approved: bool = False


@dataclass(frozen=True)
class TransitionCheck:
    """Outcome of asking whether an action may fire."""

    allowed: bool
    reason: str = ""
    to_status: OrderStatus | None = None
    to_pr_status: PRStatus | None = None


# -----------------------------------------------------------------------------
# Rules
# -----------------------------------------------------------------------------


def initial_stage(policy: CompanyPolicy) -> InitialStage:
    """Starting status, PR status and source for a new order."""
    if not policy.enable_pr_po_workflow:
        return InitialStage(
            status=OrderStatus.AWAITING_FULFILMENT,
            pr_status=None,
            source_type=SourceType.MANUAL,
        )
    if policy.enable_site_admin_pr_approval:
        return InitialStage(
            status=OrderStatus.AWAITING_APPROVAL,
            pr_status=PRStatus.PENDING_SITE_ADMIN_APPROVAL,
            source_type=SourceType.PR_PO,
        )
    return InitialStage(
        status=OrderStatus.AWAITING_FULFILMENT,
        pr_status=post_approval_pr_status(policy),
        source_type=SourceType.PR_PO,
        location_auto_approved=True,
    )


def post_approval_pr_status(policy: CompanyPolicy) -> PRStatus:
    """PR status once the site-admin stage is behind the order."""
    if policy.require_company_admin_po_approval:
        return PRStatus.PENDING_COMPANY_ADMIN_APPROVAL
    return PRStatus.SITE_ADMIN_APPROVED


def missing_fields(number: str | None, when: date | None, kind: str) -> list[tuple[str, str]]:
    """(field_name, label) pairs for blank document details.

    ``kind`` is "PR" or "PO".  The number is checked before the date.
    """
    missing: list[tuple[str, str]] = []
    if number is None or not str(number).strip():
        missing.append((f"{kind.lower()}_number", f"{kind} number"))
    if when is None:
        missing.append((f"{kind.lower()}_date", f"{kind} date"))
    return missing


def is_role_allowed(workflow: Workflow, from_state: str, action: str, role: str | None) -> bool:
    """True if ``role`` may fire ``action`` out of ``from_state``.

    When the action is not available from that state at all, the roles of
    any transition with the same action are consulted, so an unauthorised
    caller is told so before being told the state is wrong.
    """
    candidates = workflow.find(from_state, action) or tuple(
        t for t in workflow.transitions if t.action == action
    )
    if not candidates:
        return False
    for t in candidates:
        if not t.allowed_roles or role in t.allowed_roles:
            return True
    return False


def evaluate_approval(
    status: OrderStatus,
    pr_status: PRStatus | None,
    policy: CompanyPolicy,
) -> TransitionCheck:
    """Can a Site Admin approval move this order out of ``Awaiting approval``?"""
    if not ORDER_WORKFLOW.find(status, ACTION_APPROVE):
        return TransitionCheck(False, reason=f"order is '{status.value}'")
    if pr_status is None or not PR_WORKFLOW.find(pr_status, ACTION_APPROVE):
        shown = pr_status.value if pr_status else "none"
        return TransitionCheck(False, reason=f"PR status is '{shown}'")
    return TransitionCheck(
        True,
        to_status=OrderStatus.AWAITING_FULFILMENT,
        to_pr_status=post_approval_pr_status(policy),
    )


def evaluate_rejection(status: OrderStatus, pr_status: PRStatus | None) -> TransitionCheck:
    """Rejection is only possible while the order still awaits approval."""
    if status != OrderStatus.AWAITING_APPROVAL:
        return TransitionCheck(False, reason=f"order is '{status.value}'")
    if pr_status is None or not PR_WORKFLOW.find(pr_status, ACTION_REJECT):
        shown = pr_status.value if pr_status else "none"
        return TransitionCheck(False, reason=f"PR status is '{shown}'")
    return TransitionCheck(True, to_status=status, to_pr_status=PRStatus.REJECTED)


def evaluate_po_link(pr_status: PRStatus | None) -> TransitionCheck:
    """Can this order's PR be grouped into a PO?"""
    if pr_status is None or not PR_WORKFLOW.find(pr_status, ACTION_LINK_PO):
        shown = pr_status.value if pr_status else "none"
        return TransitionCheck(False, reason=f"PR status is '{shown}'")
    return TransitionCheck(True, to_pr_status=PRStatus.LINKED_TO_PO)


def fulfilment_action(status: OrderStatus, to_status: OrderStatus) -> str | None:
    """Name of the fulfilment action moving ``status`` to ``to_status``, if any."""
    for t in ORDER_WORKFLOW.transitions_from(status):
        if t.to_state == to_status and t.action in FULFILMENT_ACTIONS:
            return t.action
    return None


def evaluate_advance(status: OrderStatus, to_status: OrderStatus) -> TransitionCheck:
    """Is ``status -> to_status`` a permitted forward fulfilment step?"""
    if status in ORDER_WORKFLOW.terminal_states:
        return TransitionCheck(False, reason=f"order is already '{status.value}'")
    if fulfilment_action(status, to_status) is None:
        return TransitionCheck(
            False, reason=f"cannot move from '{status.value}' to '{to_status.value}'"
        )
    return TransitionCheck(True, to_status=to_status)


def aggregate_status(statuses: Iterable[OrderStatus]) -> DisplayStatus:
    """Display status for a split parent, computed from its children.

    - all children equal -> that status
    - some but not all Delivered -> Partially Delivered
    - some but not all Dispatched -> Partially Dispatched
    - otherwise -> the least advanced child status
    """
    children = [OrderStatus(s) for s in statuses]
    if not children:
        raise ValueError("Cannot aggregate status of a split order with no children")
    distinct = set(children)
    if len(distinct) == 1:
        return DisplayStatus.from_order_status(children[0])
    if OrderStatus.DELIVERED in distinct:
        return DisplayStatus.PARTIALLY_DELIVERED
    if OrderStatus.DISPATCHED in distinct:
        return DisplayStatus.PARTIALLY_DISPATCHED
    least = min(children, key=_PROGRESS.__getitem__)
    return DisplayStatus.from_order_status(least)
