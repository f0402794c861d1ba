"""Core mathematics and configuration for the Race Value engine.

This package contains pure building blocks for pricing a single race:

- ``race_types``   - entrant and bankroll value objects
- ``odds_math``    - odds parsing, implied probability, overround, normalisation
- ``calibration``  - softmax win probabilities and Platt scaling
- ``overlay``      - overlay, expected value and value classification
- ``kelly``        - fractional Kelly sizing and bet-size bounds
- ``wager_config`` - risk-profile presets and environment overrides
- ``exotics``      - exacta/trifecta/superfecta combinations, cost and payouts

Nothing in this package imports from ``backend.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
