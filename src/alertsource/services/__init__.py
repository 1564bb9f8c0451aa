"""Business-logic layer between the routers and the datasource core.

- datasource_service.py (ad-hoc validate/query calls)
- rules_service.py (rule group loading, validation and registration)
"""

# Import side-effects are intentionally avoided here; modules are imported by routers as needed.
