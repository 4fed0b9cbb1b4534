"""
Category Hub Package

This package contains the cross-shop category mapping and synchronization engine
for the multi-storefront commerce hub.

Modules:
- config: Configuration file and logging setup
- errors: Typed failures raised to callers
- models: Shops, category nodes, mappings and products
- paths: Breadcrumb path and depth computation with cycle protection
- payload: Raw category payload flattening
- repository: In-memory category store with JSON persistence
- matching: Canonical category matching cascade
- mapping_store: Mapping persistence with precedence rules
- tree_sync: Category tree synchronization from snapshots
- shop_tree: Administrative shop category tree editing
- tree_view: Nested canonical/shop tree read model
- suggestions: AI-assisted mapping candidates and validation
- ai_provider: AI suggestion collaborator (OpenAI / Claude)
- default_category: Product default category consistency report
"""

__version__ = "1.0.0"

__all__ = [
    "config",
    "errors",
    "models",
    "paths",
    "payload",
    "repository",
    "matching",
    "mapping_store",
    "tree_sync",
    "shop_tree",
    "tree_view",
    "suggestions",
    "ai_provider",
    "default_category",
]
