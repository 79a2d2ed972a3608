"""
Tenant database naming and MongoDB URI helpers.

`tenant_database_name()` is the single place a tenant id becomes a database name, and
`build_tenant_uri()` the single place that name is substituted into the base URI. Keeping
both here guarantees two tenants can never resolve to the same database.
"""

import re
from typing import Any, Dict, List, Optional

from jazzam_backend.database.errors import TenantValidationError

DEFAULT_TENANT_DB_PREFIX = "jazzam_company_"

# MongoDB database names are limited to 64 bytes.
MAX_DATABASE_NAME_LENGTH = 63

_TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_SCHEMES = ("mongodb://", "mongodb+srv://")
_CREDENTIALS_PATTERN = re.compile(r"//[^/@]+@")


def validate_tenant_id(tenant_id: Any, prefix: str = DEFAULT_TENANT_DB_PREFIX) -> str:
    """
    Validate a tenant id and return it as a stripped string.

    Raises:
        TenantValidationError: If the id is missing, not a string, contains characters MongoDB
            rejects in database names, or would produce an over-long database name.
    """
    if tenant_id is None:
        raise TenantValidationError("Tenant ID is required")
    if not isinstance(tenant_id, str):
        raise TenantValidationError("Tenant ID must be a string")
    tenant_id = tenant_id.strip()
    if not tenant_id:
        raise TenantValidationError("Tenant ID is required")
    if not _TENANT_ID_PATTERN.match(tenant_id):
        raise TenantValidationError("Tenant ID contains invalid characters")
    if len(prefix) + len(tenant_id) > MAX_DATABASE_NAME_LENGTH:
        raise TenantValidationError("Tenant ID is too long")
    return tenant_id


def tenant_database_name(tenant_id: str, prefix: str = DEFAULT_TENANT_DB_PREFIX) -> str:
    """Return the isolated database name for `tenant_id`."""
    return f"{prefix}{validate_tenant_id(tenant_id, prefix)}"


def _split_uri(uri: str):
    for scheme in _SCHEMES:
        if uri.startswith(scheme):
            rest = uri[len(scheme):]
            break
    else:
        raise ValueError("URI must start with mongodb:// or mongodb+srv://")

    rest, sep, query = rest.partition("?")
    host, _, path = rest.partition("/")
    return scheme, host, path, (sep + query)


def build_tenant_uri(base_uri: str, tenant_id: str, prefix: str = DEFAULT_TENANT_DB_PREFIX) -> str:
    """
    Substitute the tenant database into `base_uri`, preserving credentials and options.

    Example:
        ```python
        build_tenant_uri("mongodb://u:p@db:27017/jazzam?authSource=admin", "64ab")
        # "mongodb://u:p@db:27017/jazzam_company_64ab?authSource=admin"
        ```
    """
    if not base_uri:
        raise ValueError("Base MongoDB URI is required")
    db_name = tenant_database_name(tenant_id, prefix)
    scheme, host, _path, query = _split_uri(base_uri.strip())
    return f"{scheme}{host}/{db_name}{query}"


def mask_uri(uri: Optional[str]) -> str:
    """Replace the credentials part of a MongoDB URI with `***:***`."""
    if not uri:
        return ""
    return _CREDENTIALS_PATTERN.sub("//***:***@", uri)


def validate_mongo_uri(uri: Optional[str]) -> Dict[str, Any]:
    """
    Inspect a MongoDB URI and report problems before any connection is attempted.

    Returns:
        Dict[str, Any]: `valid`, `errors`, `warnings`, `has_credentials` and `database_name`.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not uri:
        errors.append("MongoDB URI is missing or empty")
        return {"valid": False, "errors": errors, "warnings": warnings, "has_credentials": False, "database_name": None}

    if not uri.startswith(_SCHEMES):
        errors.append("URI must start with mongodb:// or mongodb+srv://")
    if " " in uri:
        errors.append("URI contains spaces (not allowed)")
    if "\n" in uri or "\r" in uri:
        errors.append("URI contains newline characters")

    has_credentials = "@" in uri
    if not has_credentials:
        warnings.append("No credentials found in URI (may be intentional)")

    database_name = None
    if not errors:
        _scheme, _host, path, query = _split_uri(uri)
        database_name = path or None
        if "authSource=" not in query and has_credentials:
            warnings.append("authSource parameter not found (may be needed for authentication)")
    if database_name is None:
        warnings.append("Could not parse database name from URI")

    return {
        "valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "has_credentials": has_credentials,
        "database_name": database_name,
    }
