"""
Company settings: billing defaults, numbering, PDF appearance and email templates.
"""
