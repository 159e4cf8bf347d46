"""
DomeField: spatial sound fields for dome-shaped venues.
"""
