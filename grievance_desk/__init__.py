"""Grievance Desk: citizen grievance tracking backend (FastAPI + MongoDB)."""

__version__ = "0.1.0"
