"""
Expenses module: costs incurred for projects, optionally re-billed to clients.
"""
