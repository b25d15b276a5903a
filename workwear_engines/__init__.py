"""
Module: workwear_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface the kernel services
    use.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workwear_kernel/domain (and sibling engine modules).
    MUST NOT import workwear_kernel.services or workwear_config.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are passed in by
      the calling service.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from workwear_engines.categories import resolve_aliases
    from workwear_engines.entitlement import remaining
    from workwear_engines.composer import compose
    from workwear_engines.approval import aggregate_status, initial_stage
"""

from workwear_engines.approval import (
    ORDER_WORKFLOW,
    PR_WORKFLOW,
    InitialStage,
    TransitionCheck,
    aggregate_status,
    evaluate_advance,
    evaluate_approval,
    evaluate_po_link,
    evaluate_rejection,
    initial_stage,
    is_role_allowed,
    missing_fields,
    post_approval_pr_status,
)
from workwear_engines.categories import bucket_key, group_categories, resolve_aliases, same_bucket
from workwear_engines.composer import (
    CategoryOverage,
    Composition,
    VendorGroup,
    allocate_charge,
    compose,
    group_by_vendor,
)
from workwear_engines.entitlement import balance, consumption_key, lookup, remaining
from workwear_engines.tracer import traced_engine

__all__ = [
    # approval
    "ORDER_WORKFLOW",
    "PR_WORKFLOW",
    "InitialStage",
    "TransitionCheck",
    "aggregate_status",
    "evaluate_advance",
    "evaluate_approval",
    "evaluate_po_link",
    "evaluate_rejection",
    "initial_stage",
    "is_role_allowed",
    "missing_fields",
    "post_approval_pr_status",
    # categories
    "bucket_key",
    "group_categories",
    "resolve_aliases",
    "same_bucket",
    # composer
    "CategoryOverage",
    "Composition",
    "VendorGroup",
    "allocate_charge",
    "compose",
    "group_by_vendor",
    # entitlement
    "balance",
    "consumption_key",
    "lookup",
    "remaining",
    # tracer
    "traced_engine",
]
