"""HTTP API for quiz-elo-sync."""
