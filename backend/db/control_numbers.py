"""
EDI Control Number Ledger

Every outbound interchange needs three numbers that the partner uses to
detect duplicates: ISA13 (interchange), GS06 (group) and ST02
(transaction). They are issued per vendor from edi_control_numbers.

The counter is advanced with a single UPDATE ... RETURNING so concurrent
workers never read-then-write; a missing counter is created with an
INSERT ... ON CONFLICT DO UPDATE carrying the same increment. The
session is committed immediately so no row lock is held while the
caller talks to the network.

Values run 1..999,999,999 and wrap back to 1.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import case, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CONTROL_NUMBER_TYPES, EDIControlNumber
from integrations.edi_generator import ControlNumberTriple
from integrations.errors import LedgerExhausted

logger = structlog.get_logger()

MAX_CONTROL_NUMBER = 999_999_999

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _advanced_value():
    return case(
        (EDIControlNumber.last_number >= MAX_CONTROL_NUMBER, 1),
        else_=EDIControlNumber.last_number + 1,
    )


async def _create_counter(db: AsyncSession, vendor_id: uuid.UUID, number_type: str) -> int:
    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Control number upsert is not supported on {dialect}")

    stmt = (
        insert(EDIControlNumber)
        .values(id=uuid.uuid4(), vendor_id=vendor_id, number_type=number_type, last_number=1)
        .on_conflict_do_update(
            index_elements=[EDIControlNumber.vendor_id, EDIControlNumber.number_type],
            set_={"last_number": _advanced_value()},
        )
        .returning(EDIControlNumber.last_number)
    )
    result = await db.execute(stmt)
    return result.scalar_one()


async def next_control_number(db: AsyncSession, vendor_id: uuid.UUID | str, number_type: str) -> int:
    """Atomically advance and return the vendor's counter for ``number_type``."""
    if number_type not in CONTROL_NUMBER_TYPES:
        raise ValueError(f"Unknown control number type: {number_type}")
    vendor_id = vendor_id if isinstance(vendor_id, uuid.UUID) else uuid.UUID(str(vendor_id))

    stmt = (
        update(EDIControlNumber)
        .where(
            EDIControlNumber.vendor_id == vendor_id,
            EDIControlNumber.number_type == number_type,
        )
        .values(last_number=_advanced_value())
        .returning(EDIControlNumber.last_number)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    value = result.scalar_one_or_none()
    created = value is None
    if created:
        value = await _create_counter(db, vendor_id, number_type)
    await db.commit()

    if not 1 <= value <= MAX_CONTROL_NUMBER:
        raise LedgerExhausted(f"{number_type} control number {value} is outside 1..{MAX_CONTROL_NUMBER}")
    if value == 1 and not created:
        logger.info("edi.ledger.wrapped", vendor_id=str(vendor_id), number_type=number_type)
    return value


async def issue_control_numbers(db: AsyncSession, vendor_id: uuid.UUID | str) -> ControlNumberTriple:
    """Draw interchange, group and transaction numbers, in that order."""
    interchange = await next_control_number(db, vendor_id, "interchange")
    group = await next_control_number(db, vendor_id, "group")
    transaction = await next_control_number(db, vendor_id, "transaction")
    logger.debug(
        "edi.ledger.issued",
        vendor_id=str(vendor_id),
        interchange=interchange,
        group=group,
        transaction=transaction,
    )
    return ControlNumberTriple(interchange=interchange, group=group, transaction=transaction)
