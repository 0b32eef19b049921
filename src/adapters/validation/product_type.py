"""
Product-type device validator - Implements DeviceValidator protocol.

The only device validation hook shipped: the request's product type must
be on a configured allowlist. Stolen/faulty checks belong to the
lifecycle rules, not here.
"""

import logging

from src.domain.models import FactoryRecord, strip_crlf

logger = logging.getLogger(__name__)


class ProductTypeValidator:
    def __init__(self, allowed_product_types: list[str]) -> None:
        self._allowed = {item.strip().lower() for item in allowed_product_types}

    def is_device_valid(self, record: FactoryRecord, product_type: str | None) -> bool:
        if not product_type or product_type.strip().lower() not in self._allowed:
            logger.info(
                "Product type %s not allowed for serial %s",
                strip_crlf(product_type),
                strip_crlf(record.serial_number),
            )
            return False
        return True
