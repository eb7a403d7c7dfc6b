"""
Back-office Kernel

The financial and reference state engine of a client-services back office:
- Sequential, immutable reference numbers for projects and milestones
- Derived (never stored) milestone payment and invoice overdue status
- Quarter-hour billing with free-hours allowance and overage charges
- Read-through cache with typed, relationship-driven invalidation
"""

__version__ = "0.1.0"
