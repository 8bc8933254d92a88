"""Per-application wiring of the in-memory session services."""
from dataclasses import dataclass

from flask import Flask, current_app

from quickroll.services.photo_service import PhotoStorage
from quickroll.services.redemption import RedemptionEngine
from quickroll.services.session_registry import SessionRegistry


@dataclass
class AttendanceServices:
    registry: SessionRegistry
    engine: RedemptionEngine
    photos: PhotoStorage


def init_services(app: Flask) -> AttendanceServices:
    registry = SessionRegistry(
        rows=app.config['GRID_ROWS'],
        cols=app.config['GRID_COLS'],
        photo_verification_required=app.config['PHOTO_VERIFICATION_REQUIRED']
    )
    services = AttendanceServices(
        registry=registry,
        engine=RedemptionEngine(registry),
        photos=PhotoStorage(app.config['PHOTO_STORAGE_PATH'], app.config['MAX_PHOTO_SIZE_KB'])
    )
    app.extensions['quickroll'] = services
    return services


def get_services() -> AttendanceServices:
    return current_app.extensions['quickroll']
