"""
Services module for business logic separation.

Authentication, API key management and analytics aggregation live here,
between the API routers and the typed repositories in app.db.repositories.
"""
