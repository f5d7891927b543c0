"""Authentication module -- email/password accounts and server-side sessions."""
