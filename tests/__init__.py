"""
RSBSA sync test suite.

Source and target stores are in-memory SQLite databases; the change log,
registry tables and hub tables share the production table definitions.
"""
