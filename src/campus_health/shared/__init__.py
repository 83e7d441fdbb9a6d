"""
Shared Kernel Module
====================

Generic infrastructure shared by the health bounded context and the
application shell: structured logging and HTTP middleware.

DO NOT add scoring or SLA business logic to the shared kernel.
"""
