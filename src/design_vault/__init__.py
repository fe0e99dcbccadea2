"""
design_vault - Design asset gallery with optimistic editing

A gallery for UI design images and videos with features including:
- Paginated and full-collection loading against a hosted Postgres/storage backend
- Optimistic tagging, renaming and deletion with undo
- Client-side search, filtering, sorting and random/no-tag views
- AI tag suggestions with a keyword fallback
- Zip export of selected or all items
"""

__version__ = "0.1.0"
__author__ = "design-vault"
__description__ = "Design asset gallery with optimistic tagging, search and zip export"
