# Routes package init
"""
Daybook Backend: API Routes Package
====================================

Route Inventory:
    - auth.py:     /api/auth/session, login, signup, logout,
                   forgot-password, recovery-session, password
    - entries.py:  /api/entries (list, create) and /api/entries/{id}
                   (detail, update, delete)
    - health.py:   GET /health

Routes are thin: they validate the body, call the AppContext services and
choose the status code. Anything else belongs in daybook.services.
"""
