"""
alerts — Community alerts and proximity filtering.

Sub-modules:
    models    — AlertReport, Severity, DangerZone
    geofence  — nearby(), zones_containing()
    feed      — CommunityAlertFeed (report / subscribe / recent)
"""
