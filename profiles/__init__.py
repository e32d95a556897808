"""profiles/ -- Application-level user profiles (role, preferences).

The identity backend owns credentials; this package owns what the application
knows about a user beyond them. Profiles are documents in a collection,
reached through the generic controller layer in profiles/controllers.py.

Layer rule: profiles/ imports only stdlib + third-party libraries.
It does NOT import from api/ or auth/.
"""
