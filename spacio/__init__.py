"""
Spacio Meeting Room Booking Backend

This package provides the backend functionality for the meeting room booking service,
including room and booking management, the conversational booking assistant backed by
Gemini, and the FastAPI endpoints.
"""

__version__ = "1.0.0"
