"""Yield venue adapters.

The protocol allocates pooled capital to exactly two external venues and
talks to both through the uniform ``YieldVenue`` interface in ``base``:

- ``lending_pool``: deposit/withdraw venue whose withdraw returns the amount
  of base asset sent back and which raises on failure.
- ``money_market``: mint/redeem venue which reports failure through a
  nonzero status code instead of raising.

Each module ships an injected-client adapter plus an in-memory reference
venue used by the simulator and the test suite. Production deployments
substitute their own clients.
"""
