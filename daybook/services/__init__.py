# Services package init
"""
Daybook Backend: Services Layer
================================

Service Inventory:
    - BackendClient / EntryTable: async HTTP access to the hosted auth API
      and the entry table, plus the session-change feed
    - SessionStorage: persisted session between restarts
    - SessionStore: current Identity, login/signup/logout/restore
    - EntryRepository: per-identity entry cache with CRUD
    - PasswordResetService: reset email, recovery link, password update

Services know nothing about HTTP requests; routes know nothing about the
hosted backend.
"""
