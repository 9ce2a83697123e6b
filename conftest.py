# conftest.py
from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.core.database.db import get_session
from app.core.database.base import Base
from customers.domain.repositories import CustomerRepository
from products.domain.models.product import Product
from products.domain.repositories import ProductRepository


# ---- Async engine + session --------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path):
    # file database: every session gets its own connection, like a real server
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def SessionMaker(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)

@pytest_asyncio.fixture(autouse=True, scope="function")
async def override_get_session(SessionMaker):
    async def _dep():
        async with SessionMaker() as s:
            yield s
    app.dependency_overrides[get_session] = _dep
    yield
    app.dependency_overrides.pop(get_session, None)

@pytest_asyncio.fixture
async def db_session(SessionMaker):
    async with SessionMaker() as s:
        yield s


# ---- Repositories --------------------------------------------------------------

@pytest_asyncio.fixture
async def product_repo(db_session) -> ProductRepository:
    return ProductRepository(db_session)

@pytest_asyncio.fixture
async def customer_repo(db_session) -> CustomerRepository:
    return CustomerRepository(db_session)

@pytest_asyncio.fixture
async def seeded_products(SessionMaker) -> List[Product]:
    """25 products named Item-00..Item-24 priced 0..24, committed through their own session."""
    items = [Product(id=uuid4(), name=f"Item-{i:02d}", price=Decimal(i)) for i in range(25)]
    async with SessionMaker() as s:
        await ProductRepository(s).add_range(items)
    return items


# ---- SQL statement spy -------------------------------------------------------

class StatementLog:
    def __init__(self) -> None:
        self.statements: list[str] = []

    def __len__(self) -> int:
        return len(self.statements)

    def clear(self) -> None:
        self.statements.clear()

@pytest.fixture
def statement_log(async_engine) -> StatementLog:
    log = StatementLog()

    def _record(conn, cursor, statement, parameters, context, executemany):
        log.statements.append(statement)

    event.listen(async_engine.sync_engine, "before_cursor_execute", _record)
    yield log
    event.remove(async_engine.sync_engine, "before_cursor_execute", _record)


# ---- HTTP client -------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as c:
        yield c
