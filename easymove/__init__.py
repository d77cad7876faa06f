# easymove/__init__.py
"""
EasyMove: ядро маркетплейса трансферов из аэропорта.
"""

__version__ = "1.0.0"
