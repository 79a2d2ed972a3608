"""
# Jazzam Backend

Multi-tenant lead-management backend. Every company account owns an isolated MongoDB database
(`jazzam_company_<company id>`); this package resolves the tenant of each request and hands its
handlers a live, health-checked connection to that database.

## Layout

- **`config`**: `Settings` loaded from the environment / `.jazzam` / `.env`.
- **`database`**: system database manager, tenant connection pool and model registry.
- **`middleware`**: tenant resolution dependencies and request-scoped tenant context.
- **`services`**: company directory lookups against the system database.
- **`routes`**: health and tenant endpoints.
- **`utils`**: connection warmup, health reports and lifecycle logging.
"""

__version__ = "1.0.0"
