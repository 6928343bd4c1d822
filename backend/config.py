"""
Backend configuration. The gateway verifies signatures; the backend only needs
to know where roles live in the claims and where the document store is.
"""
import os

# Document store (one demonstrative aggregate query on /admin)
MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.environ.get("MONGO_DB", "demo_db")
MONGO_TIMEOUT_MS = int(os.environ.get("MONGO_TIMEOUT_MS", "10000"))
ITEMS_COLLECTION = "items"

# Dotted path to the JSON array of role strings, e.g. "realm_access.roles" for nested realm roles
ROLES_CLAIM = os.environ.get("BACKEND_ROLES_CLAIM", "roles").strip()

ROLE_USER = "user"
ROLE_ADMIN = "admin"
