from products.domain.models.product import Product
from shared.abstracts.abstract_repository import GenericRepository


class ProductRepository(GenericRepository[Product]):
    model = Product
