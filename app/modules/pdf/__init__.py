"""
PDF export of invoices and quotations (reportlab).
"""
