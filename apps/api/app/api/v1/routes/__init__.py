"""HTTP routers, one module per area; `app.main` mounts each under the API prefix."""

__all__ = [
    "admin",
    "analytics",
    "health",
    "knowledge",
    "learning",
    "search",
]
