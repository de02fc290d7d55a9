from app.models.customer import Customer
from app.models.order import Order
from app.models.product import Product
from app.repositories.relations import Cardinality, Relation
from app.repositories.tenant_scoped_repository import TenantScopedRepository


class OrderRepository(TenantScopedRepository[Order]):
    """Repository for Order records"""

    model = Order
    entity_name = "order"
    unique_fields = ("import_hash",)
    relations = (
        Relation(Order, "customer_id", Cardinality.ONE_TO_MANY, Customer, "order_ids"),
        Relation(Order, "product_ids", Cardinality.MANY_TO_MANY, Product, "order_ids"),
    )
    search_fields = ("notes",)
    label_field = "notes"
