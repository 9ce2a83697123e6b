import logging
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import and_

from products.domain.entities.product import ProductIn
from products.domain.models.product import Product
from products.domain.repositories.product_repository import ProductRepository
from shared.abstracts.query_spec import QuerySpec

logger = logging.getLogger(__name__)

SORT_FIELDS = {"name": Product.name, "price": Product.price}


class TransactionDemoError(RuntimeError):
    """Raised on purpose by the transaction demo to force a rollback."""


class ProductService:
    """
    Translates request parameters into repository calls.

    Reads here are for serialization, so they stay untracked unless the caller
    asks otherwise. Mutations load tracked instances first.
    """

    def __init__(self, repo: ProductRepository):
        self.repo = repo

    # ---------- Queries ----------

    async def list_all(self, as_no_tracking: bool = True) -> List[Product]:
        return await self.repo.find_all(as_no_tracking=as_no_tracking)

    async def get(self, product_id: UUID) -> Optional[Product]:
        return await self.repo.find_by_id(product_id)

    async def search(
        self,
        name: str | None,
        min_price: Decimal | None,
        max_price: Decimal | None,
        as_no_tracking: bool = True,
    ) -> List[Product]:
        predicate = _price_and_name_predicate(name, min_price, max_price)
        if predicate is None:
            return await self.repo.find_all(as_no_tracking=as_no_tracking)
        return await self.repo.find(predicate, as_no_tracking=as_no_tracking)

    async def query(
        self,
        min_price: Decimal | None,
        max_price: Decimal | None,
        sort: str = "name",
        direction: str = "asc",
        as_no_tracking: bool = True,
    ) -> List[Product]:
        spec = QuerySpec()
        if min_price is not None:
            spec = spec.where(Product.price >= min_price)
        if max_price is not None:
            spec = spec.where(Product.price <= max_price)
        spec = spec.order_by(*ordering_for(sort, direction))
        return await self.repo.query(spec, as_no_tracking=as_no_tracking)

    async def paged(
        self,
        page: int,
        page_size: int,
        name: str | None = None,
        sort: str = "name",
        direction: str = "asc",
        as_no_tracking: bool = True,
    ) -> tuple[List[Product], int]:
        predicate = Product.name.contains(name) if name and name.strip() else None
        return await self.repo.find_paged(
            page,
            page_size,
            predicate=predicate,
            order_by=ordering_for(sort, direction),
            as_no_tracking=as_no_tracking,
        )

    async def exists_by_name(self, name: str) -> bool:
        return await self.repo.exists(Product.name == name)

    async def count(self, min_price: Decimal | None, max_price: Decimal | None) -> int:
        return await self.repo.count(_price_and_name_predicate(None, min_price, max_price))

    def has_active_transaction(self) -> bool:
        return self.repo.has_active_transaction()

    # ---------- Mutations ----------

    async def create(self, payload: ProductIn) -> Product:
        obj = _to_model(payload)
        await self.repo.add(obj)
        return obj

    async def create_many(self, payloads: Sequence[ProductIn]) -> int:
        objs = [_to_model(p) for p in payloads]
        await self.repo.add_range(objs)
        return len(objs)

    async def replace(self, product_id: UUID, payload: ProductIn) -> Optional[Product]:
        obj = await self.repo.find_by_id(product_id)
        if obj is None:
            return None
        obj.name = payload.name
        obj.price = payload.price
        await self.repo.update(obj)
        return obj

    async def replace_many(self, payloads: Sequence[ProductIn]) -> None:
        # detached instances; the repository attaches them and writes every column
        objs = [Product(id=p.id, name=p.name, price=p.price) for p in payloads]
        await self.repo.update_range(objs)

    async def delete(self, product_id: UUID) -> bool:
        obj = await self.repo.find_by_id(product_id)
        if obj is None:
            return False
        await self.repo.delete(obj)
        return True

    async def transaction_demo(self, fail: bool = False) -> None:
        """Insert two products in one transaction; ``fail`` rolls both back."""

        async def _work():
            await self.repo.add(Product(id=uuid4(), name="Tx A", price=Decimal("10")))
            await self.repo.add(Product(id=uuid4(), name="Tx B", price=Decimal("20")))
            if fail:
                raise TransactionDemoError("deliberate failure to demonstrate rollback")

        await self.repo.execute_in_transaction(_work)
        logger.info("transaction demo committed")


# --- local helpers ---
def ordering_for(sort: str | None, direction: str | None) -> list:
    column = SORT_FIELDS.get((sort or "name").lower(), Product.name)
    if (direction or "asc").lower() == "desc":
        return [column.desc(), Product.id.asc()]
    return [column.asc(), Product.id.asc()]


def _price_and_name_predicate(
    name: str | None,
    min_price: Decimal | None,
    max_price: Decimal | None,
):
    clauses = []
    if name and name.strip():
        clauses.append(Product.name.contains(name))
    if min_price is not None:
        clauses.append(Product.price >= min_price)
    if max_price is not None:
        clauses.append(Product.price <= max_price)
    if not clauses:
        return None
    return and_(*clauses)


def _to_model(payload: ProductIn) -> Product:
    return Product(id=payload.id or uuid4(), name=payload.name, price=payload.price)
