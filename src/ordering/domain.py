"""Ordering bounded context — carts, checkout, order lifecycle and disputes.

Commands are dispatched through the Protean domain below. Their handlers
write through SQLAlchemy units of work so that one checkout can reserve
stock, claim a discount, insert the order and empty the cart in a single
database transaction.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
