"""
Storefront - dynamic product data engine

Batch computation of the fast-changing parts of a B2B product card:
- Buyer-specific prices (organization overrides over catalog base prices)
- Stock available in the warehouses serving a city
- Predicted delivery dates from warehouse delivery calendars
"""

from storefront.config import StorefrontConfig, get_config, set_config
from storefront.dynamic_data import DynamicDataService, fingerprint, normalize_product_ids
from storefront.errors import DataSourceError, InvalidBatchError

__all__ = [
    'DynamicDataService',
    'fingerprint',
    'normalize_product_ids',
    'StorefrontConfig',
    'get_config',
    'set_config',
    'DataSourceError',
    'InvalidBatchError',
]

__version__ = '0.1.0'
