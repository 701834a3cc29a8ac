"""Data access managers.

Each module provides async functions that encapsulate CRUD operations
and business rules.  Managers accept ``AsyncSession`` as a parameter
and raise domain exceptions (``swarmdesk.server.errors``), never HTTP
exceptions -- that translation is the app's responsibility.
"""
