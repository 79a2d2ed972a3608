"""
# Configuration Management Module

This module provides the configuration system for the Jazzam backend. It is built on
**Pydantic Settings** and loads values from environment variables or a config file,
validating them once at import time.

## Configuration Loading Hierarchy

```
┌─────────────────────────────────────────────────────────────┐
│         Configuration Loading Hierarchy                     │
│  (Higher layers override lower layers)                      │
├─────────────────────────────────────────────────────────────┤
│  1. Environment Variables (HIGHEST PRIORITY)                │
│  2. JAZZAM_CONFIG_PATH (custom config file path)            │
│  3. .jazzam file (project root)                             │
│  4. .env file (project root)                                │
│  5. Default values (LOWEST PRIORITY)                        │
└─────────────────────────────────────────────────────────────┘
```

## Configuration Groups

| Group | Purpose |
|-------|---------|
| **Server** | Host, port, debug mode |
| **System Database** | Shared MongoDB holding company accounts, billing and audit logs |
| **Tenant Connections** | Per-company database pool sizing, timeouts, sweep cadence |
| **Tenant Resolution** | Allowed tenant roles, retry policy for connection acquisition |
| **Warmup** | Startup pre-connection of active companies, repeated periodically in production |
| **Observability** | Prometheus `/metrics` endpoint |

### Tenant Connections
```python
TENANT_DB_PREFIX: str = "jazzam_company_"  # Database name = prefix + tenant id
TENANT_POOL_MAX_SIZE: int = 50  # Max cached tenant connections
TENANT_MAX_IDLE_SECONDS: int = 600  # Idle entries older than this are swept
TENANT_SWEEP_INTERVAL_SECONDS: int = 300  # Idle sweep cadence
TENANT_CONNECT_TIMEOUT_MS: int = 5000  # Bound on connect-or-error
TENANT_PING_TIMEOUT_MS: int = 2000  # Bound on each liveness probe
TENANT_CLOSE_TIMEOUT_MS: int = 5000  # Bound on each close
```

## Usage

```python
from jazzam_backend.config import settings

pool_size = settings.TENANT_POOL_MAX_SIZE
```

Components never read `settings` implicitly inside hot paths; they receive values through
their constructors (see `TenantConnectionPool.from_settings`) so that tests can build
isolated instances without touching the environment.
"""

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
JAZZAM_FILENAME: str = ".jazzam"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "JAZZAM_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    1.  **Environment Variable**: `JAZZAM_CONFIG_PATH` (if set and file exists).
    2.  **Jazzam Config**: `.jazzam` file in the project root directory.
    3.  **Dotenv Config**: `.env` file in the project root directory.
    4.  **Fallback**: `None`, triggering environment-variable-only mode.

    Returns:
        Optional[str]: The absolute path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    jazzam_path: Path = PROJECT_ROOT / JAZZAM_FILENAME
    if jazzam_path.exists():
        return str(jazzam_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **Server**: Host, port, debug mode, log level.
    *   **System Database**: Shared MongoDB connection details.
    *   **Tenant Connections**: Pool capacity, idle eviction and timeouts for per-company databases.
    *   **Tenant Resolution**: Role policy and retry/backoff for acquiring a tenant connection.
    *   **Warmup**: Pre-establishing connections for active companies at startup and, in
        production, every `TENANT_WARMUP_INTERVAL_MINUTES`.
    *   **Observability**: Whether `/metrics` is exposed.

    **Validation:**
    Custom validators reject empty MongoDB URLs, non-positive sizes and out-of-range timeouts.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 4000
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # System database (companies, billing, audit logs)
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "jazzam"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None
    COMPANIES_COLLECTION: str = "companies"

    # Tenant connection pool
    TENANT_DB_PREFIX: str = "jazzam_company_"
    TENANT_POOL_MAX_SIZE: int = 50
    TENANT_MAX_IDLE_SECONDS: int = 600
    TENANT_SWEEP_INTERVAL_SECONDS: int = 300
    TENANT_CONNECT_TIMEOUT_MS: int = 5000
    TENANT_PING_TIMEOUT_MS: int = 2000
    TENANT_CLOSE_TIMEOUT_MS: int = 5000

    # Driver options for each tenant client
    TENANT_CLIENT_MAX_POOL_SIZE: int = 10
    TENANT_CLIENT_MIN_POOL_SIZE: int = 2
    TENANT_SOCKET_TIMEOUT_MS: int = 45000

    # Tenant resolution
    TENANT_ALLOWED_ROLES: List[str] = ["company"]
    TENANT_ADMIN_PRINCIPAL_TYPES: List[str] = ["admin"]
    TENANT_OVERRIDE_PARAM: str = "companyId"
    TENANT_CONNECTION_RETRIES: int = 3
    TENANT_RETRY_BASE_DELAY_MS: int = 500

    # Warmup
    TENANT_WARMUP_ENABLED: bool = True
    TENANT_WARMUP_LIMIT: int = 20
    TENANT_WARMUP_CONCURRENCY: int = 5
    TENANT_WARMUP_INTERVAL_MINUTES: int = 60

    # Observability
    METRICS_ENABLED: bool = True

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """
        Validates that the MongoDB URL is not empty.

        Raises:
            ValueError: If the URL is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .jazzam and not empty!")
        return v

    @field_validator(
        "TENANT_POOL_MAX_SIZE",
        "TENANT_MAX_IDLE_SECONDS",
        "TENANT_SWEEP_INTERVAL_SECONDS",
        "TENANT_CONNECTION_RETRIES",
        "TENANT_WARMUP_LIMIT",
        "TENANT_WARMUP_CONCURRENCY",
        "TENANT_WARMUP_INTERVAL_MINUTES",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator(
        "TENANT_CONNECT_TIMEOUT_MS",
        "TENANT_PING_TIMEOUT_MS",
        "TENANT_CLOSE_TIMEOUT_MS",
        mode="before",
    )
    @classmethod
    def validate_timeout_values(cls, v: Any, info: Any) -> int:
        """
        Validates that tenant timeouts are within 1ms-300s.

        Raises:
            ValueError: If the timeout is out of range.
        """
        timeout = int(v)
        if timeout < 1 or timeout > 300000:
            raise ValueError(f"{info.field_name} must be between 1 and 300000 milliseconds")
        return timeout

    @property
    def is_production(self) -> bool:
        """`True` when running with `DEBUG=False`."""
        return not self.DEBUG


# Global settings instance
settings: Settings = Settings()
