"""
quiz-elo-sync: incremental Canvas quiz sync with dual ELO ratings.
"""

__version__ = "1.0.0"
