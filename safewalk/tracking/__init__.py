"""
tracking — Continuous position tracking.

Sub-modules:
    models       — PositionSample
    geolocation  — GeolocationSource abstraction + push-fed implementation
    service      — LocationTrackingService (start / stop / visibility)
"""
