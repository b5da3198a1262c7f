"""
Infrastructure Package
======================

Provides abstraction layers for external dependencies following the Dependency Inversion Principle.

Modules:
    - payments: Payment provider abstraction (Stripe, mock)
    - notifications: Real-time broadcaster abstraction (Channels, mock)

This package enables:
    - Easy testing with mock implementations
    - Switching between providers without code changes
"""
