"""
Database layer.

Components:
- database: async engine and session management
- gateway: persistence contract used by the sync engine
- models: SQLAlchemy tables
"""
