"""
Daybook Backend: Application Package
=====================================

What:  A personal journal service. Users sign in against a hosted auth API
       and keep dated text entries in a hosted row store.
How:   The package is layered:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Session Store, Entry    │  ← Identity lifecycle, entry cache
    │   Repository, Password Reset)       │
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← Domain models + API contracts
    ├─────────────────────────────────────┤
    │   Backend Client (Persistence)      │  ← Async HTTP to the hosted backend
    └─────────────────────────────────────┘

    Services never see HTTP requests, and the backend client never sees
    the entry cache. The AppContext (daybook.context) wires one instance
    of each service together for the lifetime of the process.
"""

__version__ = "1.0.0"
