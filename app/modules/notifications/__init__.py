"""
In-app notifications (payments received, quotations accepted or rejected).
"""
