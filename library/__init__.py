"""
Library services: catalog, accounts, rentals and reconciliation.

This package contains:
- InventoryService for the book catalog
- AccountService for user accounts
- RentalCoordinator for the rent/return state machine
- Reconciler and ReconciliationScheduler for book/rental consistency
- create_library() to wire everything from configuration
"""

__version__ = "1.0.0"
