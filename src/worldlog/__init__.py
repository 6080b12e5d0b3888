"""
worldlog: storage footprint control for game-world activity audit logs.

Compacts entity state snapshots against per-type defaults before they are
recorded, and purges old activity records in bounded, delay-spaced batches.
"""

__version__ = "0.1.0"
