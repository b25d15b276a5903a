"""
Module: workwear_kernel.models.entitlement
Responsibility: ORM persistence for employee entitlement allowances and
    consumption counters.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (employee_id, category) in each table.
    - Category keys are stored normalised (trimmed, lowercase).
    - ConsumedEntitlementModel carries a version column used as the ORM
      ``version_id_col``: an UPDATE that finds the row at a different
      version affects zero rows and raises StaleDataError, so two writers
      working from the same snapshot cannot both succeed.

Failure modes:
    - IntegrityError on a duplicate (employee_id, category) insert.
    - StaleDataError on a consumption update that lost a race.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workwear_kernel.db.base import TrackedBase


class EmployeeEntitlementModel(TrackedBase):
    """Total allowance for one employee and one category.

    Written by the entitlement-rules collaborator; read-only to ordering.
    """

    __tablename__ = "employee_entitlements"

    __table_args__ = (
        UniqueConstraint("employee_id", "category", name="uq_employee_entitlement_category"),
        Index("idx_employee_entitlement_employee", "employee_id"),
    )

    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<EmployeeEntitlement {self.employee_id}:{self.category}={self.quantity}>"

    @staticmethod
    def to_dto(employee_id: str, rows: Iterable[EmployeeEntitlementModel]):
        """Fold an employee's rows into a frozen ``EmployeeEntitlement``."""
        from workwear_kernel.domain.entitlement import EmployeeEntitlement

        return EmployeeEntitlement.from_mapping(
            employee_id, {row.category: row.quantity for row in rows},
        )


class ConsumedEntitlementModel(TrackedBase):
    """Quantity already ordered by one employee in one category."""

    __tablename__ = "consumed_entitlements"

    __table_args__ = (
        UniqueConstraint("employee_id", "category", name="uq_consumed_entitlement_category"),
        Index("idx_consumed_entitlement_employee", "employee_id"),
        CheckConstraint("quantity >= 0", name="chk_consumed_quantity_non_negative"),
    )

    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ConsumedEntitlement {self.employee_id}:{self.category}="
            f"{self.quantity} v{self.version}>"
        )

    @staticmethod
    def to_dto(employee_id: str, rows: Iterable[ConsumedEntitlementModel]):
        """Fold an employee's rows into a frozen ``ConsumedEntitlement``."""
        from workwear_kernel.domain.entitlement import ConsumedEntitlement

        return ConsumedEntitlement.from_mapping(
            employee_id, {row.category: row.quantity for row in rows},
        )
