"""Voyager verification API client."""

from voyager.api.client import VoyagerClient
from voyager.api.models import VerificationJob

__all__ = ["VerificationJob", "VoyagerClient"]
