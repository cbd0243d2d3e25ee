"""Reason codes, role names and defaults shared across the policy components."""

from __future__ import annotations

POLICY_VERSION_DEFAULT = "v1"

DECISION_ALLOW = "ALLOW"
DECISION_DENY = "DENY"

# ---- Reason code prefixes ------------------------------------------------------------

REASON_GUARDRAIL = "company_type_guardrail"
REASON_SCOPE = "scope_violation"
REASON_USER_GRANT = "user_grant"
REASON_PLATFORM = "platform_policy"

# ---- Final reason codes --------------------------------------------------------------

REASON_ROLE_DEFAULT_ALLOWED = "role_default_allowed"
REASON_USER_GRANT_ALLOWED = f"{REASON_USER_GRANT}_explicit_allow"
REASON_USER_GRANT_DENIED = f"{REASON_USER_GRANT}_explicit_deny"
REASON_ROLE_NO_DEFAULT = "role_no_default_access"
REASON_ERROR = "policy_evaluation_error"

# ---- Roles ---------------------------------------------------------------------------

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_SYSTEM_ADMIN = "SYSTEM_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_USER = "USER"

SUPER_ADMIN_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_SYSTEM_ADMIN})

# ---- Cache ---------------------------------------------------------------------------

CACHE_TTL_MINUTES = 5

AUDIT_TOPIC = "policy.audit"
