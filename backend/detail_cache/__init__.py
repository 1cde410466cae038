"""
Freshness-bound cache for per-title achievement and trophy detail lists.
"""
