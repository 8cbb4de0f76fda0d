# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the FastAPI web application:
# - main.py: App entry point, lifespan wiring, error handlers
# - config.py: Environment variable loading and settings
# - dependencies.py: Per-request services built around the caller's token
# - routers/: HTTP endpoints organized by feature
# - auth/: Sign-up, sign-in and JWT verification
# - websocket/: Live snapshot streams and cross-process change notices
#
# The app layer is thin - it handles HTTP concerns and delegates
# business logic to the core/ package.
# =============================================================================
