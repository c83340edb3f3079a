"""
quotarelay/features/entitlements/store.py

Durable entitlement store.

Handles:
- Plan upsert on checkout completion (usage preserved on conflict)
- Conditional usage increment (test-and-increment in one statement)
- Applied event log for redelivery detection

Every mutation is a single atomic statement inside one transaction. Callers
never read a row and write it back in a separate round trip.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from sqlalchemy import select, update, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as PoolTimeoutError
from sqlalchemy.sql import func

from quotarelay.core.database import entitlements, payment_events, check_connection
from quotarelay.core.errors import StorageUnavailable
from quotarelay.features.plans.catalog import PlanDescriptor


logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class EntitlementRecord:
    """Per-customer plan and usage. message_limit None means unlimited."""
    customer_id: str
    plan: str
    message_limit: Optional[int]
    messages_used: int

    @property
    def unlimited(self) -> bool:
        return self.message_limit is None

    @property
    def remaining(self) -> Optional[int]:
        if self.message_limit is None:
            return None
        return max(self.message_limit - self.messages_used, 0)


class ApplyStatus(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class ApplyOutcome:
    status: ApplyStatus
    record: Optional[EntitlementRecord]


class ConsumeStatus(str, Enum):
    ALLOWED = "ALLOWED"
    DENIED = "DENIED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class ConsumeOutcome:
    status: ConsumeStatus
    record: Optional[EntitlementRecord]


class EntitlementStore(Protocol):
    """
    Storage contract shared by the SQL store and test doubles.

    Implementations must make apply_plan and try_consume atomic with respect
    to concurrent callers, including callers in other processes.
    """

    def get(self, customer_id: str) -> Optional[EntitlementRecord]:
        """Return the stored record, or None. Never provisions."""
        ...

    def apply_plan(
        self,
        customer_id: str,
        plan: PlanDescriptor,
        *,
        event_id: Optional[str] = None,
        event_type: str = CHECKOUT_COMPLETED,
    ) -> ApplyOutcome:
        """
        Set the customer's plan and limit.

        A new record starts at messages_used=0; an existing record keeps its
        messages_used. When event_id was already applied nothing is written
        and the outcome is DUPLICATE.
        """
        ...

    def try_consume(
        self,
        customer_id: str,
        *,
        default_plan: Optional[PlanDescriptor] = None,
    ) -> ConsumeOutcome:
        """
        Increment messages_used by one if below the limit.

        With default_plan, a missing record is first created on that plan.
        Without it, a missing record yields NOT_FOUND.
        """
        ...

    def ping(self) -> bool:
        ...


def _row_to_record(row) -> EntitlementRecord:
    return EntitlementRecord(
        customer_id=row.customer_id,
        plan=row.plan,
        message_limit=row.message_limit,
        messages_used=row.messages_used,
    )


_RECORD_COLUMNS = (
    entitlements.c.customer_id,
    entitlements.c.plan,
    entitlements.c.message_limit,
    entitlements.c.messages_used,
)


class SqlEntitlementStore:
    """EntitlementStore backed by PostgreSQL (production) or SQLite."""

    def __init__(self, engine: Engine):
        self.engine = engine
        dialect = engine.dialect.name
        if dialect == "postgresql":
            self._insert = postgresql.insert
        elif dialect == "sqlite":
            self._insert = sqlite.insert
        else:
            raise ValueError(f"Unsupported database dialect for entitlement store: {dialect}")

    @contextmanager
    def _transaction(self):
        try:
            with self.engine.begin() as conn:
                yield conn
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            logger.error("[entitlements] storage unavailable", extra={"error": type(e).__name__})
            raise StorageUnavailable("Entitlement store unavailable") from e

    def get(self, customer_id: str) -> Optional[EntitlementRecord]:
        with self._transaction() as conn:
            row = conn.execute(
                select(*_RECORD_COLUMNS).where(entitlements.c.customer_id == customer_id)
            ).first()
        return _row_to_record(row) if row else None

    def apply_plan(
        self,
        customer_id: str,
        plan: PlanDescriptor,
        *,
        event_id: Optional[str] = None,
        event_type: str = CHECKOUT_COMPLETED,
    ) -> ApplyOutcome:
        with self._transaction() as conn:
            if event_id:
                logged = conn.execute(
                    self._insert(payment_events)
                    .values(
                        event_id=event_id,
                        event_type=event_type,
                        customer_id=customer_id,
                        price_id=plan.price_id,
                    )
                    .on_conflict_do_nothing(index_elements=["event_id"])
                )
                if logged.rowcount == 0:
                    return ApplyOutcome(ApplyStatus.DUPLICATE, None)

            ins = self._insert(entitlements).values(
                customer_id=customer_id,
                plan=plan.name,
                message_limit=plan.message_limit,
                messages_used=0,
            )
            # plan changes keep messages_used
            stmt = ins.on_conflict_do_update(
                index_elements=["customer_id"],
                set_={
                    "plan": ins.excluded.plan,
                    "message_limit": ins.excluded.message_limit,
                    "updated_at": func.now(),
                },
            ).returning(*_RECORD_COLUMNS)
            row = conn.execute(stmt).first()

        return ApplyOutcome(ApplyStatus.APPLIED, _row_to_record(row))

    def try_consume(
        self,
        customer_id: str,
        *,
        default_plan: Optional[PlanDescriptor] = None,
    ) -> ConsumeOutcome:
        with self._transaction() as conn:
            if default_plan is not None:
                conn.execute(
                    self._insert(entitlements)
                    .values(
                        customer_id=customer_id,
                        plan=default_plan.name,
                        message_limit=default_plan.message_limit,
                        messages_used=0,
                    )
                    .on_conflict_do_nothing(index_elements=["customer_id"])
                )

            row = conn.execute(
                update(entitlements)
                .where(
                    entitlements.c.customer_id == customer_id,
                    or_(
                        entitlements.c.message_limit.is_(None),
                        entitlements.c.messages_used < entitlements.c.message_limit,
                    ),
                )
                .values(
                    messages_used=entitlements.c.messages_used + 1,
                    updated_at=func.now(),
                )
                .returning(*_RECORD_COLUMNS)
            ).first()
            if row is not None:
                return ConsumeOutcome(ConsumeStatus.ALLOWED, _row_to_record(row))

            current = conn.execute(
                select(*_RECORD_COLUMNS).where(entitlements.c.customer_id == customer_id)
            ).first()

        if current is None:
            return ConsumeOutcome(ConsumeStatus.NOT_FOUND, None)
        return ConsumeOutcome(ConsumeStatus.DENIED, _row_to_record(current))

    def ping(self) -> bool:
        try:
            return check_connection(self.engine)
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            raise StorageUnavailable("Entitlement store unavailable") from e
