"""
storefront_data.api.routers

HTTP routers package.

Responsibilities:
- Host the health checks and the catalog read endpoints under `/v1/*`.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Routers stay thin: every query goes through a repository.
