from brokerage.models.user import User
from brokerage.models.catalog import Product, Sku
from brokerage.models.quote import Quote, QuoteItem, QuoteAttachment
from brokerage.models.supplier import SupplierPrice, SupplierJob, SupplierWeightConfig
from brokerage.models.system import SequenceCounter, ActivityLog

__all__ = [
    "User",
    "Product",
    "Sku",
    "Quote",
    "QuoteItem",
    "QuoteAttachment",
    "SupplierPrice",
    "SupplierJob",
    "SupplierWeightConfig",
    "SequenceCounter",
    "ActivityLog",
]
