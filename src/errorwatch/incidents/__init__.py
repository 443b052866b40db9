"""
Incident Management Module
==========================

Bounded context for incidents promoted from tracked errors.

Responsibilities:
- Open incidents manually or when an error alert fires
- Track status transitions and archive resolved / closed incidents
- Escalate open incidents that exceed the timeout
- Provide incident statistics
"""
