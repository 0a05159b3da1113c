"""
Projects module: client-scoped work billed hourly or at a fixed price, plus tasks.
"""
