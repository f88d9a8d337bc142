"""
storefront_data.api

Read-only catalog API.

Responsibilities:
- FastAPI app factory and router modules.
- API-layer dependency wiring and response models.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Writes are not exposed here; the admin/auth boundary lives outside this service.
