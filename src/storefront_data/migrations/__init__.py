"""
storefront_data.migrations

Migration pipeline package.

Responsibilities:
- Diff the live schema against the declared registry.
- Apply changes as recorded, all-or-nothing batches.
- Persist and replay versioned migration artifacts.

Runs only when an operator invokes `python -m storefront_data.migrations`;
nothing in the request path imports it.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Keep this package out of the API import graph.
