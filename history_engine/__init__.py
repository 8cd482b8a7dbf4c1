"""
History Progress Engine - reading, quiz gating and attempt lockout for history dossiers.
"""

__version__ = "1.0.0"
