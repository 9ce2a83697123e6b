import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import SessionTransactionOrigin

logger = logging.getLogger(__name__)

# Key under which the active context is stored in AsyncSession.info
_TX_KEY = "generic_repository.transaction"
# (SessionTransaction, TransactionContext) for a transaction the caller began
_OUTER_KEY = "generic_repository.outer_transaction"


class TransactionContext:
    """
    Handle for one explicit transaction on one session.

    Exactly one context owns the transaction (``owner=True``) and is the only
    one that commits or rolls back. Reentrant callers receive a non-owning
    view of the same transaction.
    """

    def __init__(self, session: AsyncSession, owner: bool = True, tx_id: Optional[UUID] = None):
        self.session = session
        self.owner = owner
        self.id = tx_id or uuid4()

    def joined(self) -> "TransactionContext":
        return TransactionContext(self.session, owner=False, tx_id=self.id)

    def __repr__(self) -> str:
        return f"<TransactionContext id={self.id} owner={self.owner}>"


def current_transaction(session: AsyncSession) -> Optional[TransactionContext]:
    """
    The explicit transaction active on ``session``, if any.

    Besides transactions opened through ``transaction_scope`` this reports one
    the caller began on the session itself (``async with session.begin():``)
    as a non-owning context. A transaction SQLAlchemy autobegan for a read is
    not an explicit one.
    """
    ctx = session.info.get(_TX_KEY)
    if ctx is not None:
        return ctx

    tx = session.sync_session.get_transaction()
    if tx is None or tx.origin is SessionTransactionOrigin.AUTOBEGIN:
        return None

    outer = session.info.get(_OUTER_KEY)
    if outer is None or outer[0] is not tx:
        outer = (tx, TransactionContext(session, owner=False))
        session.info[_OUTER_KEY] = outer
    return outer[1]


@asynccontextmanager
async def transaction_scope(session: AsyncSession) -> AsyncIterator[TransactionContext]:
    """
    Run the enclosed block in a transaction on ``session``.

    If a transaction is already active the block joins it and nothing is
    committed or rolled back on exit. Otherwise a new transaction begins and
    is committed on normal exit or rolled back when anything is raised; the
    original exception is re-raised unchanged.
    """
    active = current_transaction(session)
    if active is not None:
        logger.debug("joining active transaction %s", active.id)
        yield active.joined()
        return

    ctx = TransactionContext(session)
    # Only an autobegun transaction can be open here. Writes outside an
    # explicit transaction commit, so it holds nothing but reads.
    if not session.in_transaction():
        await session.begin()
    session.info[_TX_KEY] = ctx
    logger.debug("began transaction %s", ctx.id)
    try:
        yield ctx
        await session.commit()
        logger.debug("committed transaction %s", ctx.id)
    except BaseException:
        logger.warning("rolling back transaction %s", ctx.id, exc_info=True)
        await session.rollback()
        raise
    finally:
        session.info.pop(_TX_KEY, None)
