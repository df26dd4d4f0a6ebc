"""
Railway booking core

Seat inventory, booking lifecycle and offline synchronization for a train
ticket reservation system:
1. Seat Inventory with atomic, all-or-nothing seat holds per train
2. Booking Lifecycle with fares, refunds and state transitions
3. Offline Operation Queue for mutations made while disconnected
4. Sync Reconciler that replays the queue against the server

Authoritative data lives in Valkey; the offline store is SQLite.
"""

__version__ = "0.1.0"
