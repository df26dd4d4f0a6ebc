"""
Business logic services for the railway booking core.

This module contains the seat inventory, the booking lifecycle rules and
service, the offline operation queue and the sync reconciler.
"""

from .lock_manager import DistributedLockManager, LockInfo, LockContentionStats
from .seat_inventory import SeatInventory, seat_conflicts, apply_seat_status
from .booking_lifecycle import (
    BookingPlan,
    calculate_fare,
    calculate_refund,
    generate_booking_reference,
    check_transition,
    validate_passengers,
    authorize,
    plan_booking,
    plan_cancellation,
    plan_payment,
    plan_status_update,
)
from .offline_queue import OfflineOperationQueue
from .booking_service import BookingService
from .sync_reconciler import SyncReconciler, SyncScheduler

__all__ = [
    'DistributedLockManager',
    'LockInfo',
    'LockContentionStats',
    'SeatInventory',
    'seat_conflicts',
    'apply_seat_status',
    'BookingPlan',
    'calculate_fare',
    'calculate_refund',
    'generate_booking_reference',
    'check_transition',
    'validate_passengers',
    'authorize',
    'plan_booking',
    'plan_cancellation',
    'plan_payment',
    'plan_status_update',
    'OfflineOperationQueue',
    'BookingService',
    'SyncReconciler',
    'SyncScheduler',
]
