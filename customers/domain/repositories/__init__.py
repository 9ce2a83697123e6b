from customers.domain.repositories.customer_repository import CustomerRepository

__all__ = ["CustomerRepository"]
