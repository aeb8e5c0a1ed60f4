"""
Shared module for common utilities across the REST API and the WS gateway.

STRUCTURE:
- shared.security: Staff bearer verification, check-in tokens, rate limiting
  - auth.py: JWT verification, current_staff_context, require_roles
  - tokens.py: base62 token generation and format validation
  - rate_limit.py: slowapi limiter and per-table issuance counter

- shared.infrastructure: Database, Redis and messaging
  - db.py: SQLAlchemy sessions, safe_commit()
  - redis/: connection manager, key layout, Lua scripts
  - events/: channel naming, best-effort publishing
  - correlation.py: X-Request-ID propagation

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Audit actions/results, roles, limits

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - options.py: Option payload normalization and cart item identity
  - request_meta.py: Client IP and user agent resolution

IMPORT EXAMPLES:
    from shared.security.tokens import generate_secure_token
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.utils.exceptions import GoneError, SessionError
"""
