"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Recurring job scheduling
- Identifier generation
"""
