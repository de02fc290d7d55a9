from app.models.customer import Customer
from app.models.order import Order
from app.repositories.relations import Cardinality, Relation
from app.repositories.tenant_scoped_repository import TenantScopedRepository


class CustomerRepository(TenantScopedRepository[Customer]):
    """Repository for Customer records"""

    model = Customer
    entity_name = "customer"
    unique_fields = ("email", "import_hash")
    relations = (
        Relation(Customer, "order_ids", Cardinality.MANY_TO_ONE, Order, "customer_id"),
    )
    search_fields = ("name", "email")
