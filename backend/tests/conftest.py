"""
Shared fixtures: a throwaway SQLite store per test, a recording notification
sink and a handler wired to both.
"""
from datetime import datetime

import pytest
import pytest_asyncio

from click_merchant.db.init_db import create_engine, create_session_factory, initialize_database
from click_merchant.db.store import TransactionStore
from click_merchant.services.callback_service import CallbackHandler
from click_merchant.services.notification_service import NotificationDispatcher

from factories import SECRET_KEY, RecordingSink


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'click_merchant_test.db'}"


@pytest_asyncio.fixture
async def store(database_url):
    engine = create_engine(database_url)
    await initialize_database(engine)
    yield TransactionStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(sink) -> NotificationDispatcher:
    return NotificationDispatcher(sink)


@pytest.fixture
def handler(store, notifier) -> CallbackHandler:
    return CallbackHandler(store=store, notifier=notifier, secret_key=SECRET_KEY)


@pytest_asyncio.fixture
async def seeded(store):
    """One product priced 100000 and one unpaid transaction for it (both id 1)."""
    product = await store.create_product(city="Tashkent", country="UZ", price=100000)
    user = await store.get_or_create_user("+998901112233", "Aziz", "Karimov")
    transaction = await store.create_transaction(
        product_id=product.id,
        user_id=user.id,
        date=datetime(2026, 11, 1, 9, 0),
    )
    return transaction
