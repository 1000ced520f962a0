"""Core mathematics and configuration for the Pool Predict service.

This package contains pure building blocks:

- ``parimutuel``  : pool split, effective odds, payout and stake caps
- ``tiers``       : leaderboard tier thresholds and benefits
- ``streak_rules``: 24-hour streak window and warning levels

Nothing in this package imports from ``backend.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
