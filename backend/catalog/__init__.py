"""
Catalog matcher: resolves loosely named provider titles to canonical releases
and records the resulting provider mappings.
"""
