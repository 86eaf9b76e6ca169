"""
Subscriptions Gateway Test Suite

This package contains all tests for the PayPal subscriptions gateway including:
- Unit tests for the interval algorithm and REST client
- Webhook registration and verification tests
- Subscribe, callback and status flow tests
- Store and HTTP surface tests
"""
