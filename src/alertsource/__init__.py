"""Multi-backend query datasource for alert rule evaluation.

The datasource core lives in alertsource.datasource; the FastAPI service
around it is assembled in alertsource.main.
"""

__version__ = "0.4.0"
