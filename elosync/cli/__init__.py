"""Command-line interface for quiz-elo-sync."""
