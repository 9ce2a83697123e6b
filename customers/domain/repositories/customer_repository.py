from typing import List

from customers.domain.models.customer import Customer
from shared.abstracts.abstract_repository import GenericRepository
from shared.abstracts.query_spec import QuerySpec


class CustomerRepository(GenericRepository[Customer]):
    model = Customer

    async def list_active(self) -> List[Customer]:
        spec = QuerySpec().where(Customer.is_active.is_(True)).order_by(
            Customer.created_at.asc(), Customer.name.asc()
        )
        return await self.query(spec)
