"""
Portfolio Vision: analítica de snapshots y persistencia dual (local / remota).
"""

__version__ = "1.0.0"
