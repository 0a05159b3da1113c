"""
Client portal: invited client users see their own projects, time and invoices.
"""
