# Middleware package init
"""
Daybook Backend: Middleware Package
====================================

Middleware Chain (order matters):
    Request → [Request ID] → [Access Log] → [GZip] → [CORS] → Route Handler

    1. Request ID first, so every later log line can carry it
    2. Access log measures the full handler duration and final status
"""
