"""Core mathematics and configuration for the BetEdge decision engine.

This package contains pure building blocks:

- ``odds_math``     — probability conversion, expected value, bookmaker margin
- ``kelly``         — Kelly criterion sizing
- ``arbitrage``     — N-way arbitrage detection and opportunity records
- ``classifiers``   — value and risk ratings
- ``engine_config`` — decision thresholds (EV, confidence, staking, risk)

Nothing in this package imports from ``betedge.services`` or ``betedge.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
