"""Pondus: GitHub organization metrics over a cached, rate-aware API layer.

Fetches organization, member, team and repository data and aggregates
per-author commit, pull request and issue statistics.
"""

__version__ = "0.1.0"
