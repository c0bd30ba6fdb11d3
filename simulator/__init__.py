"""Market-making load generator.

Spawns one rate-paced worker per (participant, market) pair that keeps
re-quoting against the chain's latest anchor, fed by a background freshness
oracle.
"""

from __future__ import annotations

__all__ = []
