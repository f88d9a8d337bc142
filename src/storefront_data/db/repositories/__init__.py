"""
storefront_data.db.repositories

Repository package.

Responsibilities:
- Group catalog-specific query helpers built on the query façade.
"""

# Package marker; repositories are imported directly from submodules.


# --- Module Notes -----------------------------------------------------------
# Repositories are intentionally thin; page/request code decides what to render.
