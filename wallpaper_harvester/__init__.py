"""
Wallpaper Harvester — Keep a local directory of git mirrors in sync.

Clones repositories that are not present yet, hard-resets the ones that are
to their remote state, and reports a per-run summary.
"""

__version__ = "1.0.0"
