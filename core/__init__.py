# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains framework-agnostic business logic:
# - models/: Pydantic schemas for data validation
# - services/: Supabase / OpenAI backed services (tasks, images, contact)
# - workflows/: The upload -> transform -> persist state machine
# - events.py: Diagnostic event bus for permission failures
# - subscriptions.py: Live collection / document subscriptions
# - auth_state.py: Auth state observer
#
# Code in this package should NOT import FastAPI routers.
# This keeps the logic testable and reusable.
# =============================================================================
