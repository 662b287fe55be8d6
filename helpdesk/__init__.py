"""
Help Desk

Support requests from users, signed in or not. Each one needs a way to
reply (email or phone); signed-in users can page through their own.
"""

from .models import Complaint, ComplaintStatus
from .service import HelpdeskService

__all__ = [
    "Complaint",
    "ComplaintStatus",
    "HelpdeskService",
]
