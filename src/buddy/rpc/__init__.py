"""Typed RPC layer -- procedures, routers, and error codes served on /api/trpc."""
