"""
Time tracking: a running timer per user plus manual entries.
"""
