"""
Module: workwear_kernel.services.consumption_service
Responsibility: Read employee entitlements and read/increment/release
    consumed-entitlement counters inside the caller's transaction.

Architecture position: Kernel > Services.  Used by order placement and
    rejection.  Does not commit; the calling service owns the transaction
    boundary.

Invariants enforced:
    - Conservation: a counter changes only through ``consume`` / ``release``,
      each by exactly the quantity passed in.
    - Snapshot consistency: ``load_consumed(lock=True)`` takes
      ``SELECT ... FOR UPDATE`` on the employee's rows.  Increments are
      flushed against the version read at snapshot time; if another
      transaction moved the row in between, the flush matches zero rows and
      ConcurrentUpdateError is raised so the caller can retry on a fresh
      snapshot.

Failure modes:
    - ConcurrentUpdateError on a stale version or on losing the race to
      create a counter row.
"""

from __future__ import annotations

from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workwear_kernel.domain.clock import Clock, SystemClock
from workwear_kernel.domain.entitlement import (
    ConsumedEntitlement,
    EmployeeEntitlement,
    normalize_category,
)
from workwear_kernel.exceptions import ConcurrentUpdateError
from workwear_kernel.logging_config import get_logger
from workwear_kernel.models.entitlement import (
    ConsumedEntitlementModel,
    EmployeeEntitlementModel,
)

logger = get_logger("services.consumption")


class ConsumptionLedgerService:
    """
    Store for entitlement allowances and consumption counters.

    Contract:
        All writes happen inside the session's current transaction.  The
        caller commits or rolls back.

    Non-goals:
        - Does NOT decide how much to consume; the composer does.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Entitlements (written by the entitlement-rules collaborator)
    # =========================================================================

    def has_entitlement_record(self, employee_id: str) -> bool:
        row = self._session.execute(
            select(EmployeeEntitlementModel.id)
            .where(EmployeeEntitlementModel.employee_id == employee_id)
            .limit(1)
        ).first()
        return row is not None

    def load_entitlement(self, employee_id: str) -> EmployeeEntitlement:
        """The employee's total allowance (all zero if nothing is recorded)."""
        rows = self._session.execute(
            select(EmployeeEntitlementModel)
            .where(EmployeeEntitlementModel.employee_id == employee_id)
        ).scalars().all()
        return EmployeeEntitlementModel.to_dto(employee_id, rows)

    def set_entitlement(
        self,
        employee_id: str,
        quantities: Mapping[str, int],
        actor_email: str,
    ) -> EmployeeEntitlement:
        """Upsert allowance rows for ``employee_id``."""
        existing = {
            row.category: row
            for row in self._session.execute(
                select(EmployeeEntitlementModel)
                .where(EmployeeEntitlementModel.employee_id == employee_id)
            ).scalars()
        }
        for raw_category, quantity in quantities.items():
            category = normalize_category(raw_category)
            if not category:
                continue
            row = existing.get(category)
            if row is None:
                row = EmployeeEntitlementModel(
                    employee_id=employee_id,
                    category=category,
                    quantity=quantity,
                    created_by=actor_email,
                )
                self._session.add(row)
                existing[category] = row
            else:
                row.quantity = quantity
                row.updated_by = actor_email
        self._session.flush()

        logger.info(
            "entitlement_updated",
            extra={
                "employee_id": employee_id,
                "categories": sorted(existing),
                "actor": actor_email,
            },
        )
        return EmployeeEntitlementModel.to_dto(employee_id, existing.values())

    # =========================================================================
    # Consumption
    # =========================================================================

    def load_consumed(self, employee_id: str, lock: bool = False) -> ConsumedEntitlement:
        """
        Read the employee's consumption counters.

        With ``lock=True`` the rows are read fresh and locked
        (``SELECT ... FOR UPDATE``) and their versions become the snapshot
        that later ``consume`` calls are checked against.
        """
        stmt = select(ConsumedEntitlementModel).where(
            ConsumedEntitlementModel.employee_id == employee_id
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        rows = self._session.execute(stmt).scalars().all()
        return ConsumedEntitlementModel.to_dto(employee_id, rows)

    def consume(
        self,
        employee_id: str,
        category_key: str,
        quantity: int,
        actor_email: str,
    ) -> int:
        """
        Add ``quantity`` to the counter for ``category_key``.

        Returns:
            The new counter value.

        Raises:
            ConcurrentUpdateError: If the row changed since the snapshot, or
                another transaction created it first.
        """
        if quantity < 0:
            raise ValueError(f"Cannot consume a negative quantity: {quantity}")
        category = normalize_category(category_key)
        row = self._current_row(employee_id, category)

        if row is None:
            savepoint = self._session.begin_nested()
            try:
                row = ConsumedEntitlementModel(
                    employee_id=employee_id,
                    category=category,
                    quantity=quantity,
                    created_by=actor_email,
                )
                self._session.add(row)
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.warning(
                    "consumption_row_race",
                    extra={"employee_id": employee_id, "category": category},
                )
                raise ConcurrentUpdateError(
                    "consumed_entitlement", f"{employee_id}:{category}"
                ) from None
        else:
            row.quantity += quantity
            row.updated_by = actor_email
            self._flush_versioned(employee_id, category)

        logger.debug(
            "entitlement_consumed",
            extra={
                "employee_id": employee_id,
                "category": category,
                "quantity": quantity,
                "new_total": row.quantity,
            },
        )
        return row.quantity

    def release(
        self,
        employee_id: str,
        category_key: str,
        quantity: int,
        actor_email: str,
    ) -> int:
        """
        Give back ``quantity`` on ``category_key`` (order rejected).

        The counter never goes below zero; a release larger than the
        recorded consumption is clamped and logged.
        """
        category = normalize_category(category_key)
        row = self._session.execute(
            select(ConsumedEntitlementModel)
            .where(
                ConsumedEntitlementModel.employee_id == employee_id,
                ConsumedEntitlementModel.category == category,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if row is None:
            logger.warning(
                "entitlement_release_without_consumption",
                extra={"employee_id": employee_id, "category": category, "quantity": quantity},
            )
            return 0

        if quantity > row.quantity:
            logger.warning(
                "entitlement_release_clamped",
                extra={
                    "employee_id": employee_id,
                    "category": category,
                    "requested": quantity,
                    "available": row.quantity,
                },
            )
        row.quantity = max(0, row.quantity - quantity)
        row.updated_by = actor_email
        self._flush_versioned(employee_id, category)

        logger.info(
            "entitlement_released",
            extra={
                "employee_id": employee_id,
                "category": category,
                "quantity": quantity,
                "new_total": row.quantity,
            },
        )
        return row.quantity

    # =========================================================================
    # Internals
    # =========================================================================

    def _current_row(self, employee_id: str, category: str) -> ConsumedEntitlementModel | None:
        # No populate_existing: a row already loaded by load_consumed keeps
        # its snapshot version.
        return self._session.execute(
            select(ConsumedEntitlementModel).where(
                ConsumedEntitlementModel.employee_id == employee_id,
                ConsumedEntitlementModel.category == category,
            )
        ).scalar_one_or_none()

    def _flush_versioned(self, employee_id: str, category: str) -> None:
        try:
            self._session.flush()
        except StaleDataError:
            logger.warning(
                "consumption_version_conflict",
                extra={"employee_id": employee_id, "category": category},
            )
            raise ConcurrentUpdateError(
                "consumed_entitlement", f"{employee_id}:{category}"
            ) from None
