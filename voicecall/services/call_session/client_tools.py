"""Client-side tool implementations registered on the voice transport."""
import logging
from typing import Any, Dict

from voicecall.services.notifications import ORDER_DETAILS_UPDATED, EventBus

logger = logging.getLogger(__name__)

UPDATE_ORDER_TOOL = "updateOrder"


def update_order_tool(events: EventBus, parameters: Dict[str, Any]) -> str:
    """
    Publish the mood indicators the agent detected.

    The agent sends them as the orderDetailsData parameter; the UI
    listens for orderDetailsUpdated and redraws its panel.
    """
    order_details = parameters.get("orderDetailsData")
    logger.debug(f"[CLIENT TOOL] updateOrder called with: {order_details}")
    events.emit(ORDER_DETAILS_UPDATED, order_details)
    return "Updated the order details."
