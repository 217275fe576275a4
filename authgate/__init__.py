"""
authgate - Google sign-in with server-side sessions.

Packages:
- auth: the authentication gate, identity provider adapter and routes
- sessions: session store, pending login store, signed cookies
- client: client-side session reflector and its views
"""

__version__ = "1.0.0"
