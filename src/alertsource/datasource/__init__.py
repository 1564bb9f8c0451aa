"""Datasource core: dialect tags, validation, request building and response normalization.

Modules are imported directly (alertsource.datasource.client, .dialects, ...);
import side-effects are intentionally avoided here since alertsource.config
depends on alertsource.datasource.types.
"""
