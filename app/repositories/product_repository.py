from app.models.order import Order
from app.models.product import Product
from app.repositories.relations import Cardinality, Relation
from app.repositories.tenant_scoped_repository import TenantScopedRepository


class ProductRepository(TenantScopedRepository[Product]):
    """Repository for Product records"""

    model = Product
    entity_name = "product"
    unique_fields = ("name", "import_hash")
    relations = (
        Relation(Product, "order_ids", Cardinality.MANY_TO_MANY, Order, "product_ids"),
    )
    search_fields = ("name", "description")
    default_order_by = "name_ASC"
