"""
Payments module

Gateway configuration per company (Stripe, PayPal, bank transfer), payments
recorded against invoices and the raw gateway transactions behind them.
"""
