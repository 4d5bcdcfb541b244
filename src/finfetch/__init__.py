"""
Finance fetcher.

Fetches financial values (wallet balances, stock quotes, property
valuations) from several providers concurrently, under per-source rate
limits, bounded retries and a shared deadline.
"""

__version__ = "0.1.0"
