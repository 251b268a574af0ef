from fastapi import BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from licensa.core.errors import Unauthorized
from licensa.core.settings import Settings
from licensa.db.session import get_db
from licensa.repositories.license_repository import LicenseRepository
from licensa.services.license_service import LicenseService
from licensa.services.notification_service import NotifierRegistry
from licensa.services.security import verify_admin_password


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier_registry(request: Request) -> NotifierRegistry:
    return request.app.state.notifier_registry


def get_repository(db: Session = Depends(get_db)) -> LicenseRepository:
    return LicenseRepository(db)


def get_license_service(
    background_tasks: BackgroundTasks,
    repository: LicenseRepository = Depends(get_repository),
    registry: NotifierRegistry = Depends(get_notifier_registry),
    settings: Settings = Depends(get_app_settings),
) -> LicenseService:
    # Notifications run after the response has been sent.
    def schedule(event) -> None:
        background_tasks.add_task(registry.dispatch, event)

    return LicenseService(repository, on_event=schedule, key_retries=settings.key_generation_retries)


def require_admin(
    request: Request,
    x_admin_token: str = Header(default=""),
    settings: Settings = Depends(get_app_settings),
) -> None:
    if request.session.get("authenticated"):
        return
    if verify_admin_password(x_admin_token, settings.admin_password):
        return
    raise Unauthorized()
