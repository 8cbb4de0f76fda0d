# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# Application-wide objects (event bus, change hub) live on app.state and are
# created in the lifespan handler. Services are built per request around a
# Supabase client scoped to the caller's access token.
# =============================================================================

from typing import Annotated

from fastapi import Depends, Request
from supabase import Client

from app.auth import AuthUser, get_current_user, get_current_user_optional
from app.websocket.broadcast import change_notifier
from core.events import ErrorEventBus
from core.services import (
    ContactService,
    ImageRecordService,
    ImageTransformService,
    StorageService,
    TaskService,
)
from core.workflows import ImageTransformWorkflow
from lib.realtime import ChangeHub
from lib.supabase_client import SupabaseClient


def get_error_bus(request: Request) -> ErrorEventBus:
    """The application's diagnostic event bus."""
    return request.app.state.error_bus


def get_change_hub(request: Request) -> ChangeHub:
    return request.app.state.change_hub


def get_user_client(user: AuthUser = Depends(get_current_user)) -> Client:
    """
    Supabase client acting as the current user.

    Row-level security applies to everything done through it.
    """
    return SupabaseClient.for_user(user.access_token)


def get_optional_client(
    user: AuthUser | None = Depends(get_current_user_optional),
) -> Client:
    """User-scoped client when signed in, anon client otherwise."""
    if user is not None and user.access_token:
        return SupabaseClient.for_user(user.access_token)
    return SupabaseClient.create_anon_client()


def get_task_service(
    client: Client = Depends(get_user_client),
    bus: ErrorEventBus = Depends(get_error_bus),
    hub: ChangeHub = Depends(get_change_hub),
) -> TaskService:
    return TaskService(client, bus, notify=change_notifier(hub))


def get_storage_service(client: Client = Depends(get_user_client)) -> StorageService:
    return StorageService(client)


def get_image_record_service(
    client: Client = Depends(get_user_client),
    storage: StorageService = Depends(get_storage_service),
    bus: ErrorEventBus = Depends(get_error_bus),
    hub: ChangeHub = Depends(get_change_hub),
) -> ImageRecordService:
    return ImageRecordService(client, storage, bus, notify=change_notifier(hub))


def get_transform_service() -> ImageTransformService:
    return ImageTransformService()


def get_image_workflow(
    storage: StorageService = Depends(get_storage_service),
    records: ImageRecordService = Depends(get_image_record_service),
    transformer: ImageTransformService = Depends(get_transform_service),
    bus: ErrorEventBus = Depends(get_error_bus),
) -> ImageTransformWorkflow:
    return ImageTransformWorkflow(storage, transformer, records, bus)


def get_contact_service(
    client: Client = Depends(get_optional_client),
    bus: ErrorEventBus = Depends(get_error_bus),
) -> ContactService:
    return ContactService(client, StorageService(client), bus)


# Type aliases for dependency injection
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
ImageRecordServiceDep = Annotated[ImageRecordService, Depends(get_image_record_service)]
ImageWorkflowDep = Annotated[ImageTransformWorkflow, Depends(get_image_workflow)]
ContactServiceDep = Annotated[ContactService, Depends(get_contact_service)]
