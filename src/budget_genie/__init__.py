"""
Budget-Genie: media budget allocation and normalization engine.

Converts a total budget and a list of channel configurations into
per-channel spend and funnel metrics, keeps allocations summing to
exactly 100% and rebalances toward CPA / ROAS targets.
"""

__version__ = "0.1.0"
