from .inventory import Department, Product, ProductVariant, TRACKING_UNIT, TRACKING_VOLUME, TRACKING_MODES
from .sales import Sale, SaleLine, SALE_COMPLETED, SALE_VOIDED

__all__ = [
    'Department', 'Product', 'ProductVariant',
    'TRACKING_UNIT', 'TRACKING_VOLUME', 'TRACKING_MODES',
    'Sale', 'SaleLine', 'SALE_COMPLETED', 'SALE_VOIDED',
]
