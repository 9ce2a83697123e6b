from products.domain.entities.product import ProductBase, ProductIn, ProductOut, ProductPage

__all__ = ["ProductBase", "ProductIn", "ProductOut", "ProductPage"]
