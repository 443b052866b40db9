"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context (error tracking,
incidents, performance).

DO NOT add tracking, incident or performance business logic here.
"""
