"""
Invoice Service - invoice numbering for paid orders.

Only the number and the public URL are assigned here; rendering the PDF
happens elsewhere.
"""

import logging

from app.config import settings
from app.database import utcnow
from app.models.order import Order

logger = logging.getLogger(__name__)


class InvoiceService:

    @staticmethod
    def invoice_number_for(order: Order) -> str:
        """Format: INV-{YYYYMMDD}-{ORDER_ID}"""
        date_str = (order.created_at or utcnow()).strftime("%Y%m%d")
        return f"INV-{date_str}-{order.id}"

    def assign(self, order: Order) -> bool:
        """
        Give the order an invoice number if it has none.
        Returns False when one was already assigned, so a repeated paid
        transition never issues a second invoice.
        """
        if order.invoice_number:
            return False

        order.invoice_number = self.invoice_number_for(order)
        order.invoice_url = f"{settings.invoice_base_url.rstrip('/')}/{order.invoice_number}.pdf"

        logger.info(
            f"Invoice {order.invoice_number} assigned",
            extra={"order_id": order.id},
        )
        return True
