"""CareOps dashboard backend.

FastAPI application serving bed boards, transfers, welfare checks,
reminders and AI skills to polling dashboard clients.
"""

__version__ = "1.0.0"
