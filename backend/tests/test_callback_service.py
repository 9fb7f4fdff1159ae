"""
Tests for CallbackHandler: Prepare/Complete state machine and merchant operations.

Covers:
- Prepare: signature, lookup, amount and write failures
- Complete: upstream errors, idempotent confirmation, concurrent confirmation
- Best-effort notifications
- Order and catalog operations
"""
import asyncio
from datetime import datetime

import pytest

from click_merchant.exceptions import ProductNotFoundError, StorageError
from click_merchant.models.click import CompleteRequest, PrepareRequest
from click_merchant.models.products import ProductCreateRequest
from click_merchant.models.transactions import TransactionCreateRequest
from click_merchant.services.callback_service import CallbackHandler
from click_merchant.services.notification_service import NotificationDispatcher

from factories import SECRET_KEY, RecordingSink, complete_body, prepare_body


SIGN_FAILED_PREPARE = {
    "click_trans_id": 0,
    "merchant_trans_id": "0",
    "merchant_prepare_id": 0,
    "error": -1,
    "error_note": "SIGN CHECK FAILED!",
}

SIGN_FAILED_COMPLETE = {
    "click_trans_id": 0,
    "merchant_trans_id": "0",
    "merchant_confirm_id": 0,
    "error": -1,
    "error_note": "SIGN CHECK FAILED!",
}


def prepare_request(**kwargs) -> PrepareRequest:
    return PrepareRequest.model_validate(prepare_body(**kwargs))


def complete_request(**kwargs) -> CompleteRequest:
    return CompleteRequest.model_validate(complete_body(**kwargs))


# ============== Prepare ==============

class TestPrepare:

    @pytest.mark.asyncio
    async def test_valid_prepare_records_fields(self, handler, store, seeded):
        response = await handler.prepare(prepare_request())

        assert response.error == 0
        assert response.error_note == "Success"
        assert response.click_trans_id == 2241
        assert response.merchant_trans_id == "1"
        assert response.merchant_prepare_id == seeded.id

        stored = await store.get_transaction(seeded.id)
        assert stored.amount == 100000
        assert stored.click_trans_id == 2241
        assert stored.sign_time == "2026-10-19 12:00:00"
        assert stored.paid is False

    @pytest.mark.asyncio
    async def test_bad_signature_returns_fixed_envelope_without_writes(self, handler, store, seeded):
        response = await handler.prepare(prepare_request(secret_key="wrong"))

        assert response.model_dump() == SIGN_FAILED_PREPARE
        stored = await store.get_transaction(seeded.id)
        assert stored.click_trans_id is None
        assert stored.amount is None

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, handler, seeded):
        response = await handler.prepare(prepare_request(merchant_trans_id=999))
        assert response.error == -6
        assert response.error_note == "Transaction does not exist"
        assert response.merchant_prepare_id == 0

    @pytest.mark.asyncio
    async def test_non_numeric_merchant_trans_id_is_not_found(self, handler, seeded):
        response = await handler.prepare(prepare_request(merchant_trans_id="order-1"))
        assert response.error == -6

    @pytest.mark.asyncio
    async def test_merchant_trans_id_beyond_integer_column_is_not_found(self, handler, store, seeded):
        response = await handler.prepare(prepare_request(merchant_trans_id="99999999999999999999"))

        assert response.error == -6
        assert response.error_note == "Transaction does not exist"
        assert (await store.get_transaction(seeded.id)).click_trans_id is None

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, handler, store, seeded):
        response = await handler.prepare(prepare_request(amount=99999))

        assert response.error == -2
        assert response.error_note == "Incorrect parameter amount"
        assert (await store.get_transaction(seeded.id)).amount is None

    @pytest.mark.asyncio
    async def test_signature_checked_before_amount(self, handler, seeded):
        response = await handler.prepare(prepare_request(amount=99999, secret_key="wrong"))
        assert response.error == -1

    @pytest.mark.asyncio
    async def test_text_amount_with_fraction_matches_price(self, handler, seeded):
        response = await handler.prepare(prepare_request(amount="100000.00"))
        assert response.error == 0

    @pytest.mark.asyncio
    async def test_text_merchant_trans_id_echoed_as_text(self, handler, seeded):
        response = await handler.prepare(prepare_request(merchant_trans_id="1"))
        assert response.error == 0
        assert response.merchant_trans_id == "1"

    @pytest.mark.asyncio
    async def test_repeated_prepare_overwrites_click_fields(self, handler, store, seeded):
        await handler.prepare(prepare_request(click_trans_id=1000))
        response = await handler.prepare(prepare_request(click_trans_id=2000))

        assert response.error == 0
        assert (await store.get_transaction(seeded.id)).click_trans_id == 2000

    @pytest.mark.asyncio
    async def test_prepare_on_paid_transaction(self, handler, store, seeded):
        await store.mark_paid(seeded.id)
        response = await handler.prepare(prepare_request(click_trans_id=3000))

        assert response.error == -4
        assert (await store.get_transaction(seeded.id)).click_trans_id is None

    @pytest.mark.asyncio
    async def test_storage_failure_on_write(self, store, notifier, seeded):
        class FailingStore(type(store)):
            async def prepare_transaction(self, *args, **kwargs):
                raise StorageError("disk full")

        failing = FailingStore(store._session_factory)
        handler = CallbackHandler(store=failing, notifier=notifier, secret_key=SECRET_KEY)

        response = await handler.prepare(prepare_request())

        assert response.error == -7
        assert response.error_note == "Failed to update transaction"
        assert (await store.get_transaction(seeded.id)).amount is None


# ============== Complete ==============

class TestComplete:

    @pytest.mark.asyncio
    async def test_valid_complete_marks_paid_and_notifies(self, handler, store, notifier, sink, seeded):
        await handler.prepare(prepare_request())
        response = await handler.complete(complete_request())
        await notifier.drain()

        assert response.error == 0
        assert response.merchant_confirm_id == 0
        assert response.merchant_trans_id == "1"
        assert (await store.get_transaction(seeded.id)).paid is True
        assert len(sink.messages) == 1
        assert "Paid" in sink.messages[0]
        assert "+998901112233" in sink.messages[0]

    @pytest.mark.asyncio
    async def test_click_decline_maps_to_minus_four(self, handler, store, notifier, sink, seeded):
        response = await handler.complete(complete_request(error=-1, sign_string="ignored"))
        await notifier.drain()

        assert response.error == -4
        assert response.error_note == "Click error"
        assert (await store.get_transaction(seeded.id)).paid is False
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_other_click_errors_map_to_minus_nine(self, handler, seeded, caplog):
        response = await handler.complete(complete_request(error=-5017, sign_string="ignored"))

        assert response.error == -9
        assert "'upstream_error': -5017" in caplog.text

    @pytest.mark.asyncio
    async def test_bad_signature(self, handler, store, seeded):
        response = await handler.complete(complete_request(secret_key="wrong"))

        assert response.model_dump() == SIGN_FAILED_COMPLETE
        assert (await store.get_transaction(seeded.id)).paid is False

    @pytest.mark.asyncio
    async def test_merchant_prepare_id_is_signed(self, handler, seeded):
        body = complete_body(merchant_prepare_id=1)
        body["merchant_prepare_id"] = 2
        response = await handler.complete(CompleteRequest.model_validate(body))
        assert response.error == -1

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, handler, seeded):
        response = await handler.complete(complete_request(merchant_trans_id=42))
        assert response.error == -6

    @pytest.mark.asyncio
    async def test_merchant_trans_id_beyond_integer_column_is_not_found(self, handler, store, sink, notifier, seeded):
        response = await handler.complete(complete_request(merchant_trans_id=10 ** 20))
        await notifier.drain()

        assert response.error == -6
        assert (await store.get_transaction(seeded.id)).paid is False
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, handler, store, seeded):
        response = await handler.complete(complete_request(amount=1))

        assert response.error == -2
        assert (await store.get_transaction(seeded.id)).paid is False

    @pytest.mark.asyncio
    async def test_second_complete_is_rejected(self, handler, notifier, sink, seeded):
        first = await handler.complete(complete_request())
        second = await handler.complete(complete_request())
        await notifier.drain()

        assert first.error == 0
        assert second.error == -4
        assert second.error_note == "Transaction already paid"
        assert len(sink.messages) == 1

    @pytest.mark.asyncio
    async def test_concurrent_completes_pay_once(self, handler, store, notifier, sink, seeded):
        responses = await asyncio.gather(
            handler.complete(complete_request()),
            handler.complete(complete_request()),
        )
        await notifier.drain()

        assert sorted(r.error for r in responses) == [-4, 0]
        assert (await store.get_transaction(seeded.id)).paid is True
        assert len(sink.messages) == 1

    @pytest.mark.asyncio
    async def test_lost_race_on_write_reports_already_paid(self, store, notifier, sink, seeded):
        class RacingStore(type(store)):
            async def mark_paid(self, transaction_id):
                return False

        handler = CallbackHandler(
            store=RacingStore(store._session_factory), notifier=notifier, secret_key=SECRET_KEY
        )
        response = await handler.complete(complete_request())
        await notifier.drain()

        assert response.error == -4
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_notify(self, store, notifier, sink, seeded):
        class FailingStore(type(store)):
            async def mark_paid(self, transaction_id):
                raise StorageError("database is locked")

        handler = CallbackHandler(
            store=FailingStore(store._session_factory), notifier=notifier, secret_key=SECRET_KEY
        )
        response = await handler.complete(complete_request())
        await notifier.drain()

        assert response.error == -7
        assert sink.messages == []
        assert (await store.get_transaction(seeded.id)).paid is False

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(self, store, seeded, caplog):
        notifier = NotificationDispatcher(RecordingSink(fail=True))
        handler = CallbackHandler(store=store, notifier=notifier, secret_key=SECRET_KEY)

        response = await handler.complete(complete_request())
        await notifier.drain()

        assert response.error == 0
        assert (await store.get_transaction(seeded.id)).paid is True
        assert "Notification failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_envelope(self, store, notifier, seeded):
        class BrokenStore(type(store)):
            async def get_transaction(self, transaction_id):
                raise RuntimeError("boom")

        handler = CallbackHandler(
            store=BrokenStore(store._session_factory), notifier=notifier, secret_key=SECRET_KEY
        )
        response = await handler.complete(complete_request())

        assert response.error == -7
        assert response.merchant_confirm_id == 0


# ============== Merchant operations ==============

class TestMerchantOperations:

    @pytest.mark.asyncio
    async def test_create_transaction(self, handler, store, notifier, sink):
        product = await handler.create_product(ProductCreateRequest(city="Samarkand", country="UZ", price=50000))

        response = await handler.create_transaction(TransactionCreateRequest(
            product_id=product.product_id,
            phone="+998935554433",
            first_name="Dilnoza",
            last_name="Saidova",
            date=datetime(2026, 12, 1),
        ))
        await notifier.drain()

        assert response.amount == 50000
        stored = await store.get_transaction(response.transaction_id)
        assert stored.paid is False
        assert stored.amount is None
        assert stored.user_id == response.user_id
        assert len(sink.messages) == 1
        assert "Samarkand" in sink.messages[0]

    @pytest.mark.asyncio
    async def test_same_phone_reuses_user(self, handler):
        product = await handler.create_product(ProductCreateRequest(city="Bukhara", country="UZ", price=1000))
        order = dict(product_id=product.product_id, phone="+998900000001",
                     first_name="A", last_name="B", date=datetime(2026, 12, 1))

        first = await handler.create_transaction(TransactionCreateRequest(**order))
        second = await handler.create_transaction(TransactionCreateRequest(**order))

        assert first.user_id == second.user_id
        assert first.transaction_id != second.transaction_id

    @pytest.mark.asyncio
    async def test_unknown_product(self, handler, sink):
        with pytest.raises(ProductNotFoundError) as exc_info:
            await handler.create_transaction(TransactionCreateRequest(
                product_id=77, phone="+998900000002", first_name="A", last_name="B",
                date=datetime(2026, 12, 1),
            ))
        assert exc_info.value.to_dict() == {"error": -1, "error_note": "Product not found"}
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_list_products_hides_price(self, handler):
        await handler.create_product(ProductCreateRequest(city="Tashkent", country="UZ", price=100000))
        await handler.create_product(ProductCreateRequest(city="Almaty", country="KZ", price=90000))

        listing = await handler.list_products()

        assert [p.model_dump() for p in listing.products] == [
            {"id": 1, "city": "Tashkent", "country": "UZ"},
            {"id": 2, "city": "Almaty", "country": "KZ"},
        ]
