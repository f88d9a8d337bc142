"""
storefront_data.db

Persistence package.

Responsibilities:
- Schema registry and the storefront's catalog declarations.
- Connection resolution, stateless executors and the typed query façade.
- Thin repositories used by the read API.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Import from submodules directly; keeping this empty avoids import cycles with
# `db.connection`, which depends on both executors and the façade.
