"""
depot_services -- Package init and public API.

Responsibility:
    Transaction ownership over the depot kernel.  FulfillmentCoordinator is
    the only component that opens sessions, commits and rolls back; the
    NotificationDispatcher hands committed events to a Notifier.

Architecture position:
    Services -- outermost layer of this package.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        depot_services/ -> depot_kernel/   (allowed)
        depot_kernel/   -> depot_services/ (FORBIDDEN)
"""

from depot_services.fulfillment_coordinator import FulfillmentCoordinator, UnitOfWork
from depot_services.notification import LoggingNotifier, NotificationDispatcher, Notifier

__all__ = [
    "FulfillmentCoordinator",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "UnitOfWork",
]
