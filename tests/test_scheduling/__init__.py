"""
Tests for the scheduling core.

This package covers:
- Retry planning and error classification
- Wallet rate limiting
- Job store ordering, retention and expiration
- The scheduler loop, its events and queue snapshots
"""
