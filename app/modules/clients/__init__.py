"""
Clients module: the people and businesses a freelancer bills.
"""
