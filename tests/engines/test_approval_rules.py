"""
Tests for the pure approval and fulfilment rules.

Tests cover:
- initial_stage: starting status per company policy
- missing_fields: PR/PO precondition checks
- evaluate_approval / evaluate_rejection / evaluate_po_link
- is_role_allowed: asserted-role checks per action
- evaluate_advance: forward-only fulfilment steps
- aggregate_status: split parent display status
"""

from datetime import date

import pytest

from workwear_engines.approval import (
    ACTION_APPROVE,
    ACTION_DISPATCH,
    ACTION_LINK_PO,
    ACTION_REJECT,
    ORDER_WORKFLOW,
    PR_WORKFLOW,
    aggregate_status,
    evaluate_advance,
    evaluate_approval,
    evaluate_po_link,
    evaluate_rejection,
    fulfilment_action,
    initial_stage,
    is_role_allowed,
    missing_fields,
)
from workwear_kernel.domain.orders import DisplayStatus, OrderStatus, PRStatus, SourceType
from workwear_kernel.domain.policy import CompanyPolicy
from workwear_kernel.domain.workflow import Transition, Workflow

AA = OrderStatus.AWAITING_APPROVAL
AF = OrderStatus.AWAITING_FULFILMENT
AD = OrderStatus.AWAITING_DISPATCH
DISPATCHED = OrderStatus.DISPATCHED
DELIVERED = OrderStatus.DELIVERED


def policy(**flags) -> CompanyPolicy:
    return CompanyPolicy(company_id="ACME", **flags)


class TestInitialStage:

    def test_manual_when_workflow_off(self):
        stage = initial_stage(policy())
        assert stage.status == AF
        assert stage.pr_status is None
        assert stage.source_type == SourceType.MANUAL

    def test_awaits_site_admin(self):
        stage = initial_stage(
            policy(enable_pr_po_workflow=True, enable_site_admin_pr_approval=True)
        )
        assert stage.status == AA
        assert stage.pr_status == PRStatus.PENDING_SITE_ADMIN_APPROVAL
        assert stage.source_type == SourceType.PR_PO
        assert not stage.location_auto_approved

    def test_auto_approved_pending_company_admin(self):
        stage = initial_stage(
            policy(enable_pr_po_workflow=True, require_company_admin_po_approval=True)
        )
        assert stage.status == AF
        assert stage.pr_status == PRStatus.PENDING_COMPANY_ADMIN_APPROVAL
        assert stage.location_auto_approved

    def test_auto_approved_without_company_step(self):
        stage = initial_stage(policy(enable_pr_po_workflow=True))
        assert stage.pr_status == PRStatus.SITE_ADMIN_APPROVED
        assert stage.location_auto_approved


class TestMissingFields:

    def test_complete(self):
        assert missing_fields("PR-1", date(2024, 6, 1), "PR") == []

    @pytest.mark.parametrize("number", [None, "", "   "])
    def test_blank_number(self, number):
        assert missing_fields(number, date(2024, 6, 1), "PR") == [("pr_number", "PR number")]

    def test_number_reported_before_date(self):
        assert missing_fields("", None, "PO") == [
            ("po_number", "PO number"),
            ("po_date", "PO date"),
        ]


class TestEvaluateTransitions:

    def test_approval_with_company_admin_step(self):
        check = evaluate_approval(
            AA, PRStatus.PENDING_SITE_ADMIN_APPROVAL,
            policy(enable_pr_po_workflow=True, require_company_admin_po_approval=True),
        )
        assert check.allowed
        assert check.to_status == AF
        assert check.to_pr_status == PRStatus.PENDING_COMPANY_ADMIN_APPROVAL

    def test_approval_without_company_admin_step(self):
        check = evaluate_approval(AA, PRStatus.PENDING_SITE_ADMIN_APPROVAL, policy())
        assert check.allowed
        assert check.to_pr_status == PRStatus.SITE_ADMIN_APPROVED

    @pytest.mark.parametrize(
        "status, pr_status",
        [
            (AF, PRStatus.SITE_ADMIN_APPROVED),
            (AA, PRStatus.REJECTED),
            (AA, None),
            (DELIVERED, None),
        ],
    )
    def test_approval_refused(self, status, pr_status):
        check = evaluate_approval(status, pr_status, policy())
        assert not check.allowed
        assert check.reason

    def test_rejection_only_while_awaiting_approval(self):
        assert evaluate_rejection(AA, PRStatus.PENDING_SITE_ADMIN_APPROVAL).allowed
        assert not evaluate_rejection(AF, PRStatus.SITE_ADMIN_APPROVED).allowed
        assert not evaluate_rejection(AA, PRStatus.REJECTED).allowed

    @pytest.mark.parametrize(
        "pr_status, allowed",
        [
            (PRStatus.SITE_ADMIN_APPROVED, True),
            (PRStatus.PENDING_COMPANY_ADMIN_APPROVAL, True),
            (PRStatus.COMPANY_ADMIN_APPROVED, True),
            (PRStatus.PENDING_SITE_ADMIN_APPROVAL, False),
            (PRStatus.LINKED_TO_PO, False),
            (PRStatus.REJECTED, False),
            (None, False),
        ],
    )
    def test_po_link(self, pr_status, allowed):
        assert evaluate_po_link(pr_status).allowed is allowed


class TestRoles:

    def test_site_admin_may_approve(self):
        assert is_role_allowed(ORDER_WORKFLOW, AA, ACTION_APPROVE, "SITE_ADMIN")
        assert is_role_allowed(ORDER_WORKFLOW, AA, ACTION_APPROVE, "COMPANY_ADMIN")

    def test_employee_and_vendor_may_not_approve(self):
        assert not is_role_allowed(ORDER_WORKFLOW, AA, ACTION_APPROVE, "EMPLOYEE")
        assert not is_role_allowed(ORDER_WORKFLOW, AA, ACTION_APPROVE, "VENDOR")
        assert not is_role_allowed(ORDER_WORKFLOW, AA, ACTION_APPROVE, None)

    def test_role_checked_even_from_wrong_state(self):
        assert not is_role_allowed(ORDER_WORKFLOW, DELIVERED, ACTION_APPROVE, "EMPLOYEE")
        assert is_role_allowed(ORDER_WORKFLOW, DELIVERED, ACTION_APPROVE, "SITE_ADMIN")

    def test_only_company_admin_links_po(self):
        state = PRStatus.SITE_ADMIN_APPROVED
        assert is_role_allowed(PR_WORKFLOW, state, ACTION_LINK_PO, "COMPANY_ADMIN")
        assert not is_role_allowed(PR_WORKFLOW, state, ACTION_LINK_PO, "SITE_ADMIN")

    def test_rejection_from_company_stage_needs_company_admin(self):
        state = PRStatus.PENDING_COMPANY_ADMIN_APPROVAL
        assert is_role_allowed(PR_WORKFLOW, state, ACTION_REJECT, "COMPANY_ADMIN")
        assert not is_role_allowed(PR_WORKFLOW, state, ACTION_REJECT, "SITE_ADMIN")

    def test_vendor_dispatches(self):
        assert is_role_allowed(ORDER_WORKFLOW, AF, ACTION_DISPATCH, "VENDOR")
        assert not is_role_allowed(ORDER_WORKFLOW, AF, ACTION_DISPATCH, "SITE_ADMIN")


class TestAdvance:

    @pytest.mark.parametrize(
        "current, target",
        [(AF, AD), (AF, DISPATCHED), (AD, DISPATCHED), (DISPATCHED, DELIVERED)],
    )
    def test_forward_steps(self, current, target):
        check = evaluate_advance(current, target)
        assert check.allowed
        assert check.to_status == target
        assert fulfilment_action(current, target) is not None

    @pytest.mark.parametrize(
        "current, target",
        [(AD, AF), (AF, DELIVERED), (AA, AF), (DELIVERED, DISPATCHED), (DISPATCHED, DISPATCHED)],
    )
    def test_refused_steps(self, current, target):
        assert not evaluate_advance(current, target).allowed


class TestAggregateStatus:

    @pytest.mark.parametrize(
        "children, expected",
        [
            ([AF, AF], DisplayStatus.AWAITING_FULFILMENT),
            ([DELIVERED, DELIVERED], DisplayStatus.DELIVERED),
            ([DISPATCHED, DELIVERED], DisplayStatus.PARTIALLY_DELIVERED),
            ([AF, DELIVERED], DisplayStatus.PARTIALLY_DELIVERED),
            ([AF, DISPATCHED], DisplayStatus.PARTIALLY_DISPATCHED),
            ([DISPATCHED, DISPATCHED], DisplayStatus.DISPATCHED),
            ([AD, AF], DisplayStatus.AWAITING_FULFILMENT),
            ([AA, AF], DisplayStatus.AWAITING_APPROVAL),
        ],
    )
    def test_aggregate(self, children, expected):
        assert aggregate_status(children) == expected

    def test_accepts_stored_strings(self):
        assert aggregate_status(["Dispatched", "Delivered"]) == DisplayStatus.PARTIALLY_DELIVERED

    def test_no_children(self):
        with pytest.raises(ValueError):
            aggregate_status([])


class TestWorkflowDefinition:

    def test_delivered_is_terminal(self):
        assert DELIVERED in ORDER_WORKFLOW.terminal_states
        assert ORDER_WORKFLOW.transitions_from(DELIVERED) == ()

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", "go"),),
            )
