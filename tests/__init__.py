# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the TaskStudio API:
# - fakes.py: In-memory Supabase client and workflow collaborators
# - test_models.py: Pydantic model validation
# - test_tasks.py / test_image_records.py / test_contact.py: Services
# - test_subscriptions.py / test_realtime.py / test_auth_state.py: Live state
# - test_image_workflow.py: Upload -> transform -> persist
# - test_routes.py / test_download_relay.py / test_websocket.py: API surface
# - test_auth.py: Access token verification
# - test_events.py / test_broadcast.py / test_transform_service.py: Plumbing
#
# Run tests with: pytest
# =============================================================================
