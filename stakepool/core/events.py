# MIT License
# Copyright (c) 2025 Hashborn

"""
Event system for pool lifecycle events.

Event names and their keyword payloads:
    deposit_recorded        account, deposit
    deposit_withdrawn       account, deposit
    transfer_failed         operation, account, amount, error
    reward_paid             distribution_id, account, amount
    distribution_completed  receipt
    distribution_failed     receipt
"""
from typing import Dict, List, Callable, Any, Optional
import logging

logger = logging.getLogger(__name__)

DEPOSIT_RECORDED = "deposit_recorded"
DEPOSIT_WITHDRAWN = "deposit_withdrawn"
TRANSFER_FAILED = "transfer_failed"
REWARD_PAID = "reward_paid"
DISTRIBUTION_COMPLETED = "distribution_completed"
DISTRIBUTION_FAILED = "distribution_failed"


class EventBus:
    """
    Simple synchronous pub/sub.

    Events are delivered in the emitting task, after the state change they
    describe is committed. Listener errors are logged and never reach the
    emitting operation.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        if event_type not in self.listeners:
            self.listeners[event_type] = []

        self.listeners[event_type].append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        listeners = self.listeners.get(event_type, [])

        if not listeners:
            return

        for callback in list(listeners):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def clear(self, event_type: Optional[str] = None) -> None:
        """Clear listeners for one event type, or all of them."""
        if event_type:
            self.listeners.pop(event_type, None)
        else:
            self.listeners.clear()
