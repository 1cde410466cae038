"""
Lifetime score: a pure, reproducible function of a user's reconciled progress.
"""
