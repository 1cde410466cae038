"""
Reconciliation merger: folds provider observations into per-user progress
rows without ever regressing previously known state.
"""
