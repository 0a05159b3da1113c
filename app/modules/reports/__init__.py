"""
Reports: dashboard figures and period summaries with CSV export.
"""
