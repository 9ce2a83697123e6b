import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from customers.domain.entities.customer import CustomerIn, CustomerOut
from customers.domain.models.customer import Customer
from customers.domain.repositories import CustomerRepository


@pytest.mark.asyncio
async def test_should_fill_defaults_when_customer_is_added(customer_repo: CustomerRepository):
    # GIVEN
    c = Customer(name="Ana")

    # WHEN
    await customer_repo.add(c)

    # THEN
    out = CustomerOut.model_validate(c)                     # -> loaded without refresh
    assert out.name == "Ana"
    assert out.is_active is True
    assert out.created_at is not None

@pytest.mark.asyncio
async def test_should_build_inactive_customer_from_input_schema(customer_repo: CustomerRepository):
    # GIVEN
    payload = CustomerIn(name="Edu", is_active=False)

    # WHEN
    await customer_repo.add(Customer(**payload.model_dump()))

    # THEN
    assert await customer_repo.list_active() == []
    assert await customer_repo.count(Customer.name == "Edu") == 1

@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "x" * 201])
async def test_should_reject_invalid_customer_name(name):
    with pytest.raises(ValueError):                         # -> pydantic ValidationError
        CustomerIn(name=name)

@pytest.mark.asyncio
async def test_should_list_only_active_customers_oldest_first(customer_repo: CustomerRepository):
    # GIVEN
    await customer_repo.add_range([
        Customer(name="Ana"),
        Customer(name="Bruno", is_active=False),
        Customer(name="Carla"),
    ])

    # WHEN
    rows = await customer_repo.list_active()

    # THEN
    assert [c.name for c in rows] == ["Ana", "Carla"]

@pytest.mark.asyncio
async def test_should_deactivate_customer_through_update(customer_repo: CustomerRepository, SessionMaker):
    # GIVEN
    c = Customer(name="Davi")
    await customer_repo.add(c)

    # WHEN
    c.is_active = False
    await customer_repo.update(c)

    # THEN
    async with SessionMaker() as s:
        fresh = await CustomerRepository(s).find_by_id(c.id)
    assert fresh.is_active is False
    assert await customer_repo.count(Customer.is_active.is_(True)) == 0

@pytest.mark.asyncio
async def test_should_page_customers_like_any_other_model(db_session: AsyncSession):
    repo = CustomerRepository(db_session)
    await repo.add_range([Customer(name=f"C{i}") for i in range(5)])

    items, total = await repo.find_paged(2, 2, order_by=[Customer.name.asc()])

    assert total == 5
    assert [c.name for c in items] == ["C2", "C3"]
