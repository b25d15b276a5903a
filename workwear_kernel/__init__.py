"""
Workwear Kernel - Order Placement & Approval Engine

Entitlement-aware order placement and PR/PO approval for workwear
distribution:
- Per-employee, per-category entitlement ledger with category aliasing
- Vendor-split order composition with personal-payment allocation
- Site-admin / company-admin approval state machine
- Bulk approval with per-order failure isolation
"""

__version__ = "0.1.0"
