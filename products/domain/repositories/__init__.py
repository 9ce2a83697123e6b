from products.domain.repositories.product_repository import ProductRepository

__all__ = ["ProductRepository"]
