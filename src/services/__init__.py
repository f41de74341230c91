"""
Services layer for the claims portal.
"""
