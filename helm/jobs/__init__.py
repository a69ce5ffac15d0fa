# FILE: helm/jobs/__init__.py
"""Job admission (rate limits and daily budget)."""
