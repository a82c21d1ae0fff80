"""
routing — Trip routes and deviation monitoring.

Sub-modules:
    models      — RoutePolyline, DeviationState, OffsetVector
    directions  — RoutingClient + Directions API client
    monitor     — RouteDeviationMonitor
"""
