"""
Transaction Store

Async persistence for products, users and transactions.

Every public method runs in its own database transaction and either commits
completely or rolls back. Failures surface as StorageError so callers never
depend on SQLAlchemy exception types.

The two state transitions the callbacks rely on (prepare and mark_paid) are
single conditional UPDATE statements guarded by `paid = false`, so concurrent
callbacks for one transaction cannot both succeed.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import StorageError
from ..models.products import ProductRecord
from ..models.transactions import TransactionRecord, UserRecord
from .models import ProductModel, UserModel, TransactionModel

logger = logging.getLogger(__name__)


class TransactionStore:
    """
    Store backed by an async SQLAlchemy session factory.

    Args:
        session_factory: async_sessionmaker producing AsyncSession objects
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ========================================================================
    # Products
    # ========================================================================

    async def create_product(self, city: str, country: str, price: int) -> ProductRecord:
        try:
            async with self._session_factory() as session, session.begin():
                product = ProductModel(city=city, country=country, price=price)
                session.add(product)
                await session.flush()
                record = ProductRecord.model_validate(product)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create product: {e}") from e

        logger.info(f"Created product: {record.id}, city={city}, country={country}, price={price}")
        return record

    async def get_product(self, product_id: int) -> Optional[ProductRecord]:
        try:
            async with self._session_factory() as session:
                product = await session.get(ProductModel, product_id)
                return ProductRecord.model_validate(product) if product else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load product {product_id}: {e}") from e

    async def list_products(self) -> List[ProductRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ProductModel).order_by(ProductModel.id))
                return [ProductRecord.model_validate(p) for p in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list products: {e}") from e

    # ========================================================================
    # Users
    # ========================================================================

    async def get_or_create_user(self, phone: str, first_name: str, last_name: str) -> UserRecord:
        """
        Find user by phone, creating it on first sight.

        A concurrent insert of the same phone loses on the unique index and
        falls back to reading the winner's row.
        """
        try:
            existing = await self._find_user(phone)
            if existing:
                return existing

            try:
                async with self._session_factory() as session, session.begin():
                    user = UserModel(phone=phone, first_name=first_name, last_name=last_name)
                    session.add(user)
                    await session.flush()
                    record = UserRecord.model_validate(user)
                logger.info(f"Created user: {record.id}")
                return record
            except IntegrityError:
                logger.debug(f"User with phone already exists, re-reading: {phone}")
                existing = await self._find_user(phone)
                if existing is None:
                    raise
                return existing
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get or create user: {e}") from e

    async def _find_user(self, phone: str) -> Optional[UserRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserModel).where(UserModel.phone == phone))
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    # ========================================================================
    # Transactions
    # ========================================================================

    async def create_transaction(self, product_id: int, user_id: int, date: datetime) -> TransactionRecord:
        try:
            async with self._session_factory() as session, session.begin():
                transaction = TransactionModel(product_id=product_id, user_id=user_id, date=date, paid=False)
                session.add(transaction)
                await session.flush()
                transaction_id = transaction.id
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create transaction: {e}") from e

        record = await self.get_transaction(transaction_id)
        logger.info(f"Created transaction: {transaction_id}, product={product_id}, user={user_id}")
        return record

    async def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        """Load transaction with its product and user, or None."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TransactionModel).where(TransactionModel.id == transaction_id)
                )
                transaction = result.unique().scalar_one_or_none()
                return TransactionRecord.model_validate(transaction) if transaction else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load transaction {transaction_id}: {e}") from e

    async def prepare_transaction(
        self,
        transaction_id: int,
        click_trans_id: int,
        sign_time: str,
        amount: int
    ) -> bool:
        """
        Record Prepare fields on an unpaid transaction.

        Returns:
            True if the row was updated, False if it is missing or already paid
        """
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(TransactionModel)
                    .where(TransactionModel.id == transaction_id, TransactionModel.paid.is_(False))
                    .values(
                        click_trans_id=click_trans_id,
                        sign_time=sign_time,
                        amount=amount,
                        updated_at=datetime.utcnow(),
                    )
                )
                updated = result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to prepare transaction {transaction_id}: {e}") from e

        logger.debug(f"Prepare update for transaction {transaction_id}: updated={updated}")
        return updated

    async def mark_paid(self, transaction_id: int) -> bool:
        """
        Flip paid from false to true.

        Returns:
            True for the single caller that performed the transition, False if
            the transaction was already paid (or missing)
        """
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(TransactionModel)
                    .where(TransactionModel.id == transaction_id, TransactionModel.paid.is_(False))
                    .values(paid=True, updated_at=datetime.utcnow())
                )
                updated = result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to mark transaction {transaction_id} paid: {e}") from e

        logger.debug(f"Paid update for transaction {transaction_id}: updated={updated}")
        return updated
