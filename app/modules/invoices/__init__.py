"""
Invoices: numbering, totals, project billing, delivery and public links.
"""
