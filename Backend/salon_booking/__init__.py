"""Salon booking backend: availability, booking commits and the public booking API."""
