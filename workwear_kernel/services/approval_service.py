"""
workwear_kernel.services.approval_service -- Order approval lifecycle.

Responsibility:
    Moves placed orders through the approval and fulfilment stages: Site
    Admin PR approval (single and bulk), rejection with entitlement
    release, Company Admin PO linking, and forward fulfilment steps.
    Delegates every "may this happen?" decision to the pure rules in
    ``workwear_engines.approval``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/
    and workwear_engines.

Invariants enforced:
    - Split atomicity: an action addressed to a split parent or to any of
      its children is applied to the parent and every child in one
      transaction, or to none of them.
    - At-most-once transitions: every row is written with a conditional
      UPDATE on its expected pre-state.  A row that no longer matches
      (another actor got there first) aborts the whole group with
      ConcurrentUpdateError and nothing is written.
    - Bulk isolation: each id in a bulk approval commits or rolls back on
      its own; ids already covered by an earlier id's group in the same
      call are reported as successes without a second write.
    - Committed per-id transitions stay committed when a bulk run is
      cancelled or times out.

Failure modes:
    - MissingApprovalFieldError for blank PR/PO numbers or missing dates.
    - OrderNotFoundError for unknown ids.
    - UnauthorizedActorError when the asserted role may not act.
    - InvalidOrderTransitionError when the order is not in a state that
      permits the action.
    - MultiplePRsNotAllowedError when several PRs are linked to one PO and
      the company forbids it.
    - ConcurrentUpdateError when a conditional update lost a race.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping, Sequence
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workwear_engines.approval import (
    ACTION_APPROVE,
    ACTION_DISPATCH,
    ACTION_LINK_PO,
    ACTION_REJECT,
    ORDER_WORKFLOW,
    PR_WORKFLOW,
    evaluate_advance,
    evaluate_approval,
    evaluate_po_link,
    evaluate_rejection,
    fulfilment_action,
    is_role_allowed,
    missing_fields,
)
from workwear_kernel.domain.clock import Clock, SystemClock
from workwear_kernel.domain.orders import (
    ActorRole,
    BulkApprovalResult,
    BulkFailure,
    Order,
    OrderStatus,
    PRData,
    PRStatus,
    PurchaseOrder,
)
from workwear_kernel.domain.policy import PolicySource
from workwear_kernel.exceptions import (
    ConcurrentUpdateError,
    DependencyError,
    InvalidOrderTransitionError,
    MissingApprovalFieldError,
    MultiplePRsNotAllowedError,
    OperationCancelledError,
    OrderNotFoundError,
    UnauthorizedActorError,
    ValidationError,
    WorkwearKernelError,
)
from workwear_kernel.logging_config import LogContext, get_logger
from workwear_kernel.models.order import OrderModel
from workwear_kernel.models.purchase_order import (
    PurchaseOrderLinkModel,
    PurchaseOrderModel,
)
from workwear_kernel.selectors.order_selector import OrderSelector
from workwear_kernel.services.consumption_service import ConsumptionLedgerService

logger = get_logger("services.approvals")


def _pr_status(row: OrderModel) -> PRStatus | None:
    return PRStatus(row.pr_status) if row.pr_status else None


def _raise_missing(number: str | None, when: date | None, kind: str) -> None:
    missing = missing_fields(number, when, kind)
    if missing:
        field_name, label = missing[0]
        raise MissingApprovalFieldError(field_name, label)


class OrderApprovalService:
    """
    Approval, rejection, PO linking and fulfilment steps for orders.

    Contract:
        Every public write method owns its transaction: commit on success,
        rollback and re-raise on failure.  ``bulk_approve`` commits or rolls
        back per id and never raises for a per-id failure.

    Guarantees:
        - Callers may address a split order by parent id or by any child id.
        - The caller's asserted role is trusted but checked against the
          action; identity lookup is the caller's job.
        - Clock is injectable for deterministic testing.
    """

    def __init__(
        self,
        session: Session,
        policies: PolicySource,
        clock: Clock | None = None,
    ):
        self._session = session
        self._policies = policies
        self._clock = clock or SystemClock()
        self._orders = OrderSelector(session)
        self._ledger = ConsumptionLedgerService(session, self._clock)

    # =========================================================================
    # Site Admin approval
    # =========================================================================

    def approve(
        self,
        order_id: str,
        approver_email: str,
        pr_number: str | None,
        pr_date: date | None,
        approver_role: ActorRole = ActorRole.SITE_ADMIN,
    ) -> Order:
        """
        Approve an order (and, for a split order, its whole group) with a PR.

        Returns:
            The approved order view (the parent, for a split order).

        Raises:
            MissingApprovalFieldError: PR number blank or PR date missing.
            OrderNotFoundError: Unknown order id.
            UnauthorizedActorError: Role may not approve.
            InvalidOrderTransitionError: Order already past approval.
            ConcurrentUpdateError: Another approver won the race.
        """
        with LogContext.bind(order_id=order_id, actor_id=approver_email):
            try:
                order, group_ids = self._approve_group(
                    order_id, approver_email, approver_role, pr_number, pr_date,
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "order_approved",
                extra={
                    "order_id": order.order_id,
                    "group_ids": group_ids,
                    "pr_number": order.pr_number,
                    "status": order.status.value,
                    "pr_status": order.pr_status.value if order.pr_status else None,
                },
            )
            return order

    def bulk_approve(
        self,
        order_ids: Sequence[str],
        approver_email: str,
        pr_data_per_order: Mapping[str, PRData],
        approver_role: ActorRole = ActorRole.SITE_ADMIN,
        cancel_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> BulkApprovalResult:
        """
        Approve many orders, isolating failures per id.

        ``order_ids`` may name a split parent and its children together;
        the group is approved once and every id that names it is reported
        as a success.  PR data is looked up by the id itself, then by the
        id's split parent.

        Args:
            order_ids: Ids to approve, processed in the given order.
            approver_email: Acting Site Admin.
            pr_data_per_order: PR number/date per order id.
            approver_role: Asserted role of the approver.
            cancel_event: When set, remaining ids are not processed.
            timeout_seconds: Deadline for the whole run, checked per id.

        Returns:
            BulkApprovalResult with ``success`` ids, ``failed`` entries
            ``(order_id, error, code)`` and whether the run was cancelled.
            Ids already approved through an earlier id of their split group
            count as successes even when the run is cancelled.

        Raises:
            TypeError: A ``pr_data_per_order`` value is not ``PRData``.
                Raised before any id is processed.
        """
        for key, value in pr_data_per_order.items():
            if not isinstance(value, PRData):
                raise TypeError(f"PR data for {key} must be PRData, got {type(value).__name__}")

        deadline = None
        if timeout_seconds is not None:
            deadline = time.monotonic() + timeout_seconds

        ordered = list(dict.fromkeys(order_ids))
        success: list[str] = []
        failed: list[BulkFailure] = []
        transitioned: set[str] = set()
        cancelled = False

        logger.info(
            "bulk_approval_started",
            extra={"order_count": len(ordered), "actor_id": approver_email},
        )

        for index, order_id in enumerate(ordered):
            if order_id in transitioned:
                logger.debug("bulk_approval_already_covered", extra={"order_id": order_id})
                success.append(order_id)
                continue

            stop_reason = self._stop_reason(cancel_event, deadline)
            if stop_reason is not None:
                cancelled = True
                unprocessed = 0
                for remaining_id in ordered[index:]:
                    # committed with an earlier id of the same split group
                    if remaining_id in transitioned:
                        success.append(remaining_id)
                        continue
                    exc = OperationCancelledError(remaining_id, stop_reason)
                    failed.append(BulkFailure(remaining_id, str(exc), exc.code))
                    unprocessed += 1
                logger.warning(
                    "bulk_approval_cancelled",
                    extra={"reason": stop_reason, "unprocessed": unprocessed},
                )
                break

            with LogContext.bind(order_id=order_id, actor_id=approver_email):
                try:
                    pr = self._pr_data_for(order_id, pr_data_per_order)
                    if pr is None:
                        raise MissingApprovalFieldError("pr_number", "PR number")
                    _, group_ids = self._approve_group(
                        order_id, approver_email, approver_role, pr.pr_number, pr.pr_date,
                    )
                    self._session.commit()
                except WorkwearKernelError as exc:
                    self._session.rollback()
                    failed.append(BulkFailure(order_id, str(exc), exc.code))
                    logger.warning(
                        "bulk_approval_item_failed",
                        extra={"order_id": order_id, "code": exc.code, "error": str(exc)},
                    )
                    continue
                except SQLAlchemyError as exc:
                    self._session.rollback()
                    failed.append(BulkFailure(order_id, str(exc), DependencyError.code))
                    logger.error(
                        "bulk_approval_item_storage_error",
                        extra={"order_id": order_id},
                        exc_info=True,
                    )
                    continue

            transitioned.update(group_ids)
            success.append(order_id)

        result = BulkApprovalResult(
            success=tuple(success),
            failed=tuple(failed),
            cancelled=cancelled,
        )
        logger.info(
            "bulk_approval_completed",
            extra={
                "success_count": len(result.success),
                "failed_count": len(result.failed),
                "cancelled": cancelled,
            },
        )
        return result

    # =========================================================================
    # Rejection
    # =========================================================================

    def reject(
        self,
        order_id: str,
        actor_email: str,
        reason: str,
        actor_role: ActorRole = ActorRole.SITE_ADMIN,
    ) -> Order:
        """
        Reject an order awaiting approval and release its entitlement.

        Raises:
            MissingApprovalFieldError: Blank reason.
            OrderNotFoundError: Unknown order id.
            UnauthorizedActorError: Role may not reject.
            InvalidOrderTransitionError: Order is no longer awaiting approval.
        """
        with LogContext.bind(order_id=order_id, actor_id=actor_email):
            try:
                if reason is None or not reason.strip():
                    raise MissingApprovalFieldError("rejection_reason", "Rejection reason")

                root, children = self._load_group(order_id)
                rows = [root, *children]
                self._authorize(
                    PR_WORKFLOW, _pr_status(root) or PRStatus.PENDING_SITE_ADMIN_APPROVAL,
                    ACTION_REJECT, actor_email, actor_role,
                )
                for row in rows:
                    check = evaluate_rejection(OrderStatus(row.status), _pr_status(row))
                    if not check.allowed:
                        raise InvalidOrderTransitionError(
                            row.order_id, row.status, "reject", row.pr_status,
                        )

                self._transition_rows(
                    rows,
                    {
                        "pr_status": PRStatus.REJECTED.value,
                        "rejection_reason": reason.strip(),
                        "rejected_by": actor_email,
                        "rejected_at": self._clock.now(),
                    },
                    actor_email,
                )

                released: dict[str, int] = {}
                for item in root.items:
                    if item.entitlement_key:
                        released[item.entitlement_key] = (
                            released.get(item.entitlement_key, 0) + item.quantity
                        )
                for key, quantity in released.items():
                    self._ledger.release(root.employee_id, key, quantity, actor_email)

                group_ids = [r.order_id for r in rows]
                order = self._reload(root)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "order_rejected",
                extra={
                    "order_id": order.order_id,
                    "group_ids": group_ids,
                    "released": released,
                },
            )
            return order

    # =========================================================================
    # Company Admin PO linking
    # =========================================================================

    def link_to_purchase_order(
        self,
        order_ids: Sequence[str],
        po_number: str | None,
        po_date: date | None,
        actor_email: str,
        actor_role: ActorRole = ActorRole.COMPANY_ADMIN,
    ) -> list[PurchaseOrder]:
        """
        Group approved PRs into a purchase order, one PO row per vendor.

        All-or-nothing: if any order cannot be linked, nothing is written.

        Returns:
            The purchase orders written, one per vendor.

        Raises:
            MissingApprovalFieldError: PO number blank or PO date missing.
            ValidationError: No ids, or ids spanning several companies.
            OrderNotFoundError: Unknown order id.
            UnauthorizedActorError: Role is not Company Admin.
            InvalidOrderTransitionError: An order's PR is not approved yet
                or is already linked.
            MultiplePRsNotAllowedError: Several PRs and the company
                forbids grouping them.
        """
        with LogContext.bind(actor_id=actor_email):
            try:
                _raise_missing(po_number, po_date, "PO")
                if not order_ids:
                    raise ValidationError("At least one order is required to raise a PO")
                po_number = po_number.strip()

                self._authorize(
                    PR_WORKFLOW, PRStatus.SITE_ADMIN_APPROVED,
                    ACTION_LINK_PO, actor_email, actor_role,
                )

                groups: dict[str, tuple[OrderModel, list[OrderModel]]] = {}
                for order_id in dict.fromkeys(order_ids):
                    root, children = self._load_group(order_id)
                    groups.setdefault(root.order_id, (root, children))

                companies = {root.company_id for root, _ in groups.values()}
                if len(companies) > 1:
                    raise ValidationError(
                        f"Orders from several companies cannot share PO {po_number}"
                    )
                policy = self._policies.get(companies.pop())

                rows: list[OrderModel] = []
                for root, children in groups.values():
                    rows.extend([root, *children])
                for row in rows:
                    if not evaluate_po_link(_pr_status(row)).allowed:
                        raise InvalidOrderTransitionError(
                            row.order_id, row.status, "link to a purchase order", row.pr_status,
                        )

                pr_keys = list(dict.fromkeys(
                    root.pr_number or root.order_id for root, _ in groups.values()
                ))
                if not policy.allow_multi_pr_po and len(pr_keys) > 1:
                    raise MultiplePRsNotAllowedError(po_number, pr_keys)

                now = self._clock.now()
                self._transition_rows(
                    rows,
                    {
                        "pr_status": PRStatus.LINKED_TO_PO.value,
                        "po_number": po_number,
                        "company_admin_approved_by": actor_email,
                        "company_admin_approved_at": now,
                    },
                    actor_email,
                )

                purchase_orders = self._write_purchase_orders(
                    policy.company_id, po_number, po_date, groups, actor_email,
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "orders_linked_to_po",
                extra={
                    "po_number": po_number,
                    "order_ids": list(groups),
                    "pr_numbers": pr_keys,
                    "vendor_count": len(purchase_orders),
                },
            )
            return purchase_orders

    # =========================================================================
    # Fulfilment
    # =========================================================================

    def advance_status(
        self,
        order_id: str,
        to_status: OrderStatus | str,
        actor_email: str,
        actor_role: ActorRole = ActorRole.VENDOR,
    ) -> Order:
        """
        Move a standalone order or a split child one fulfilment step forward.

        A split parent's status is derived from its children and cannot be
        advanced directly.

        Raises:
            ValidationError: ``to_status`` is not a stored order status.
            OrderNotFoundError: Unknown order id.
            UnauthorizedActorError: Role may not perform fulfilment.
            InvalidOrderTransitionError: Not a permitted forward step.
        """
        with LogContext.bind(order_id=order_id, actor_id=actor_email):
            try:
                try:
                    target = OrderStatus(to_status)
                except ValueError:
                    raise ValidationError(f"Unknown order status: {to_status}") from None

                row = self._orders.find_model(order_id)
                if row is None:
                    raise OrderNotFoundError(order_id)
                if row.is_split_parent:
                    raise InvalidOrderTransitionError(
                        order_id, row.status, f"move split parent to '{target.value}'",
                    )

                current = OrderStatus(row.status)
                action = fulfilment_action(current, target) or ACTION_DISPATCH
                self._authorize(ORDER_WORKFLOW, current, action, actor_email, actor_role)

                check = evaluate_advance(current, target)
                if not check.allowed:
                    raise InvalidOrderTransitionError(
                        order_id, row.status, f"move to '{target.value}'",
                    )

                values: dict = {"status": target.value}
                if target == OrderStatus.DISPATCHED:
                    values["dispatched_at"] = self._clock.now()
                elif target == OrderStatus.DELIVERED:
                    values["delivered_at"] = self._clock.now()
                self._transition_rows([row], values, actor_email)

                order = self._reload(row)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "order_status_advanced",
                extra={
                    "order_id": order_id,
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
            return order

    def order_view(self, order_id: str) -> Order:
        """The order with its children and, for a split parent, its aggregate status."""
        return self._orders.get(order_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _approve_group(
        self,
        order_id: str,
        approver_email: str,
        approver_role: ActorRole,
        pr_number: str | None,
        pr_date: date | None,
    ) -> tuple[Order, list[str]]:
        """Validate and write an approval for the whole group.  No commit."""
        _raise_missing(pr_number, pr_date, "PR")

        root, children = self._load_group(order_id)
        rows = [root, *children]
        self._authorize(
            ORDER_WORKFLOW, OrderStatus(root.status), ACTION_APPROVE,
            approver_email, approver_role,
        )

        policy = self._policies.get(root.company_id)
        check = None
        for row in rows:
            check = evaluate_approval(OrderStatus(row.status), _pr_status(row), policy)
            if not check.allowed:
                raise InvalidOrderTransitionError(
                    row.order_id, row.status, "approve", row.pr_status,
                )

        self._transition_rows(
            rows,
            {
                "status": check.to_status.value,
                "pr_status": check.to_pr_status.value,
                "pr_number": pr_number.strip(),
                "pr_date": pr_date,
                "site_admin_approved_by": approver_email,
                "site_admin_approved_at": self._clock.now(),
            },
            approver_email,
        )
        return self._reload(root), [row.order_id for row in rows]

    def _load_group(self, order_id: str) -> tuple[OrderModel, list[OrderModel]]:
        """The top-level row for ``order_id`` and its split children."""
        model = self._orders.find_model(order_id)
        if model is None:
            raise OrderNotFoundError(order_id)
        root = model
        if model.parent_order_id:
            root = self._orders.find_model(model.parent_order_id)
            if root is None:
                raise OrderNotFoundError(model.parent_order_id)
        children = self._orders.children_of(root.order_id) if root.is_split_parent else []
        return root, children

    def _pr_data_for(self, order_id: str, pr_data: Mapping[str, PRData]) -> PRData | None:
        if order_id in pr_data:
            return pr_data[order_id]
        model = self._orders.find_model(order_id)
        if model is not None and model.parent_order_id:
            return pr_data.get(model.parent_order_id)
        return None

    def _authorize(
        self,
        workflow,
        state: str,
        action: str,
        actor_email: str,
        role: ActorRole | str | None,
    ) -> None:
        if not is_role_allowed(workflow, state, action, role):
            shown = role.value if isinstance(role, ActorRole) else str(role)
            logger.warning(
                "unauthorized_action",
                extra={"action": action, "role": shown, "actor_id": actor_email},
            )
            raise UnauthorizedActorError(actor_email, shown, action)

    def _transition_rows(
        self,
        rows: Sequence[OrderModel],
        values: dict,
        actor_email: str,
    ) -> None:
        """Conditionally update each row on its current (status, pr_status)."""
        for row in rows:
            pr_condition = (
                OrderModel.pr_status == row.pr_status
                if row.pr_status is not None
                else OrderModel.pr_status.is_(None)
            )
            result = self._session.execute(
                update(OrderModel)
                .where(
                    OrderModel.order_id == row.order_id,
                    OrderModel.status == row.status,
                    pr_condition,
                )
                .values(**values, updated_by=actor_email)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "order_transition_conflict",
                    extra={"order_id": row.order_id, "expected_status": row.status},
                )
                raise ConcurrentUpdateError("order", row.order_id)

    def _reload(self, root: OrderModel) -> Order:
        self._session.expire_all()
        model = self._orders.find_model(root.order_id)
        if model is None:
            raise OrderNotFoundError(root.order_id)
        return self._orders.to_view(model)

    def _write_purchase_orders(
        self,
        company_id: str,
        po_number: str,
        po_date: date,
        groups: Mapping[str, tuple[OrderModel, list[OrderModel]]],
        actor_email: str,
    ) -> list[PurchaseOrder]:
        by_vendor: dict[str, PurchaseOrderModel] = {}
        for root, children in groups.values():
            for row in children or [root]:
                vendor_id = row.vendor_id or ""
                po = by_vendor.get(vendor_id)
                if po is None:
                    po = self._session.query(PurchaseOrderModel).filter_by(
                        company_id=company_id, po_number=po_number, vendor_id=vendor_id,
                    ).one_or_none()
                    if po is None:
                        po = PurchaseOrderModel(
                            company_id=company_id,
                            po_number=po_number,
                            po_date=po_date,
                            vendor_id=vendor_id,
                            vendor_name=row.vendor_name or "",
                            created_by=actor_email,
                        )
                        self._session.add(po)
                    by_vendor[vendor_id] = po
                po.links.append(
                    PurchaseOrderLinkModel(
                        order_id=row.order_id,
                        pr_number=row.pr_number,
                        created_by=actor_email,
                    )
                )
        self._session.flush()
        return [po.to_dto() for po in by_vendor.values()]

    @staticmethod
    def _stop_reason(
        cancel_event: threading.Event | None,
        deadline: float | None,
    ) -> str | None:
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled"
        if deadline is not None and time.monotonic() >= deadline:
            return "deadline exceeded"
        return None
