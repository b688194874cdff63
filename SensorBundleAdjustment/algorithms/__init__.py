"""
Algorithms for sensor bundle adjustment.
"""
