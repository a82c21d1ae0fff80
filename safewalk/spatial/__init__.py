"""
spatial — Great-circle geometry (haversine, bearings, bounding boxes).
"""
