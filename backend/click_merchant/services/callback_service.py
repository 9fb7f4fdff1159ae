"""
Callback Service

Orchestrates the Click two-phase payment protocol and the merchant-side
order operations.

Transaction state machine:
    CREATED (amount=None, paid=False)
        --Prepare--> PREPARED (amount set, paid=False)
        --Complete--> PAID (paid=True)

Gateway-facing operations never raise: every outcome, including storage
failures and unexpected errors, becomes the fixed Click response envelope.
"""
from decimal import Decimal
from typing import Union
import logging

from pydantic import SecretStr

from ..db.store import TransactionStore
from ..exceptions import (
    ClickError,
    SignCheckFailedError,
    IncorrectAmountError,
    AlreadyPaidError,
    TransactionNotFoundError,
    UpdateFailedError,
    UpstreamError,
    ProductNotFoundError,
    StorageError,
)
from ..models.click import (
    ClickCallbackRequest,
    PrepareRequest,
    CompleteRequest,
    PrepareResponse,
    CompleteResponse,
)
from ..models.products import (
    ProductCreateRequest,
    ProductCreateResponse,
    ProductListResponse,
    ProductSummary,
)
from ..models.transactions import (
    TransactionRecord,
    TransactionCreateRequest,
    TransactionCreateResponse,
)
from .notification_service import (
    NotificationDispatcher,
    format_new_order_message,
    format_paid_message,
)
from .signature_service import ACTION_PREPARE, ACTION_COMPLETE, verify_click_signature

logger = logging.getLogger(__name__)


def prepare_error_response(error: ClickError) -> PrepareResponse:
    """Prepare envelope for a failed callback; ids are zeroed."""
    return PrepareResponse(
        click_trans_id=0,
        merchant_trans_id="0",
        merchant_prepare_id=0,
        **error.to_dict()
    )


def complete_error_response(error: ClickError) -> CompleteResponse:
    """Complete envelope for a failed callback; ids are zeroed."""
    return CompleteResponse(
        click_trans_id=0,
        merchant_trans_id="0",
        merchant_confirm_id=0,
        **error.to_dict()
    )


class CallbackHandler:
    """
    Stateless handler for Prepare/Complete callbacks and merchant operations.

    Args:
        store: Transaction store
        notifier: Dispatcher for best-effort notifications
        secret_key: Click secret key, used only for signature checks
    """

    def __init__(
        self,
        store: TransactionStore,
        notifier: NotificationDispatcher,
        secret_key: Union[str, SecretStr]
    ):
        self._store = store
        self._notifier = notifier
        self._secret_key = secret_key if isinstance(secret_key, SecretStr) else SecretStr(secret_key)

    # ========================================================================
    # Prepare (action=0)
    # ========================================================================

    async def prepare(self, request: PrepareRequest) -> PrepareResponse:
        """
        Handle Prepare callback.

        Checks, first failure wins:
        1. Signature (action=0)            -> -1
        2. Transaction exists              -> -6
        3. Transaction not yet paid        -> -4
        4. Amount equals product price     -> -2
        5. Conditional write of click_trans_id, sign_time, amount -> -7 on failure

        Returns:
            PrepareResponse with error=0 and merchant_prepare_id set on success
        """
        try:
            transaction = await self._prepare(request)
        except ClickError as e:
            details = f" details={e.details}" if e.details else ""
            logger.warning(
                f"Prepare rejected: click_trans_id={request.click_trans_id}, "
                f"merchant_trans_id={request.merchant_trans_id}, error={int(e.error_code)} ({e.error_note})"
                f"{details}"
            )
            return prepare_error_response(e)
        except Exception:
            logger.exception(f"Unexpected error in Prepare: merchant_trans_id={request.merchant_trans_id}")
            return prepare_error_response(UpdateFailedError())

        logger.info(
            f"Prepare accepted: click_trans_id={request.click_trans_id}, transaction={transaction.id}"
        )

        return PrepareResponse(
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
            merchant_prepare_id=transaction.id,
            error=0,
            error_note="Success",
        )

    async def _prepare(self, request: PrepareRequest) -> TransactionRecord:
        self._check_signature(request, ACTION_PREPARE)

        transaction = await self._load_transaction(request)

        if transaction.paid:
            raise AlreadyPaidError()

        self._check_amount(request, transaction)

        try:
            updated = await self._store.prepare_transaction(
                transaction.id,
                click_trans_id=request.click_trans_id,
                sign_time=request.sign_time,
                amount=int(request.amount_value),
            )
        except StorageError as e:
            logger.error(f"Prepare write failed for transaction {transaction.id}: {e}")
            raise UpdateFailedError() from e

        # Zero rows: confirmed between our read and our write
        if not updated:
            raise AlreadyPaidError()

        return transaction

    # ========================================================================
    # Complete (action=1)
    # ========================================================================

    async def complete(self, request: CompleteRequest) -> CompleteResponse:
        """
        Handle Complete callback.

        Checks, first failure wins:
        1. Gateway error < 0               -> -4 (Click's -1) or -9
        2. Signature (action=1)            -> -1
        3. Transaction exists              -> -6
        4. Transaction not yet paid        -> -4
        5. Amount equals product price     -> -2
        6. Conditional paid=true write     -> -7 on failure, -4 if another call won

        A "paid" notification is dispatched only after the write succeeded.
        """
        try:
            transaction = await self._complete(request)
        except ClickError as e:
            details = f" details={e.details}" if e.details else ""
            logger.warning(
                f"Complete rejected: click_trans_id={request.click_trans_id}, "
                f"merchant_trans_id={request.merchant_trans_id}, error={int(e.error_code)} ({e.error_note})"
                f"{details}"
            )
            return complete_error_response(e)
        except Exception:
            logger.exception(f"Unexpected error in Complete: merchant_trans_id={request.merchant_trans_id}")
            return complete_error_response(UpdateFailedError())

        logger.info(
            f"Complete accepted: click_trans_id={request.click_trans_id}, transaction={transaction.id} paid"
        )

        self._notifier.dispatch(
            format_paid_message(transaction),
            context=f"transaction {transaction.id} paid"
        )

        return CompleteResponse(
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
            merchant_confirm_id=0,
            error=0,
            error_note="Success",
        )

    async def _complete(self, request: CompleteRequest) -> TransactionRecord:
        if request.error < 0:
            raise UpstreamError(request.error)

        self._check_signature(request, ACTION_COMPLETE, merchant_prepare_id=request.merchant_prepare_id)

        transaction = await self._load_transaction(request)

        if transaction.paid:
            raise AlreadyPaidError()

        self._check_amount(request, transaction)

        try:
            updated = await self._store.mark_paid(transaction.id)
        except StorageError as e:
            logger.error(f"Complete write failed for transaction {transaction.id}: {e}")
            raise UpdateFailedError() from e

        if not updated:
            raise AlreadyPaidError()

        return transaction

    # ========================================================================
    # Shared checks
    # ========================================================================

    def _check_signature(self, request: ClickCallbackRequest, action: int, merchant_prepare_id=None) -> None:
        valid = verify_click_signature(
            request.sign_string,
            click_trans_id=request.click_trans_id,
            service_id=request.service_id,
            secret_key=self._secret_key,
            merchant_trans_id=request.merchant_trans_id,
            merchant_prepare_id=merchant_prepare_id,
            amount=request.amount,
            action=action,
            sign_time=request.sign_time,
        )
        if not valid:
            raise SignCheckFailedError()

    async def _load_transaction(self, request: ClickCallbackRequest) -> TransactionRecord:
        transaction_id = request.transaction_id
        if transaction_id is None:
            raise TransactionNotFoundError()

        try:
            transaction = await self._store.get_transaction(transaction_id)
        except StorageError as e:
            logger.error(f"Failed to read transaction {transaction_id}: {e}")
            raise UpdateFailedError() from e

        if transaction is None:
            raise TransactionNotFoundError()
        return transaction

    @staticmethod
    def _check_amount(request: ClickCallbackRequest, transaction: TransactionRecord) -> None:
        if request.amount_value != Decimal(transaction.product.price):
            raise IncorrectAmountError()

    # ========================================================================
    # Merchant operations
    # ========================================================================

    async def create_transaction(self, request: TransactionCreateRequest) -> TransactionCreateResponse:
        """
        Create an unpaid order for a product.

        Raises:
            ProductNotFoundError: product_id is unknown
            StorageError: database failure
        """
        product = await self._store.get_product(request.product_id)
        if product is None:
            logger.warning(f"Order for unknown product: {request.product_id}")
            raise ProductNotFoundError()

        user = await self._store.get_or_create_user(
            phone=request.phone,
            first_name=request.first_name,
            last_name=request.last_name,
        )
        transaction = await self._store.create_transaction(
            product_id=product.id,
            user_id=user.id,
            date=request.date,
        )

        self._notifier.dispatch(
            format_new_order_message(transaction.id, product, user),
            context=f"transaction {transaction.id} created"
        )

        return TransactionCreateResponse(
            transaction_id=transaction.id,
            user_id=user.id,
            amount=product.price,
        )

    async def create_product(self, request: ProductCreateRequest) -> ProductCreateResponse:
        product = await self._store.create_product(
            city=request.city,
            country=request.country,
            price=request.price,
        )
        return ProductCreateResponse(product_id=product.id)

    async def list_products(self) -> ProductListResponse:
        products = await self._store.list_products()
        return ProductListResponse(
            products=[ProductSummary(id=p.id, city=p.city, country=p.country) for p in products]
        )
