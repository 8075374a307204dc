"""
Deterministic quote calculators.

Pure Python decimal math. No I/O, no database.
Given an immutable snapshot of a quote and its pricing context,
produce exact, rounded cost breakdowns for materials, edges, cutouts,
services and joins, plus rule discounts and unit-block aggregation.
"""
