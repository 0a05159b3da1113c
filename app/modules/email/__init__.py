"""
Email delivery: SMTP, Resend or Brevo, with built-in and company templates.
"""
