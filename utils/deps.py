from fastapi import Request

from api.reference_images.reference_images_store import ReferenceImageStore
from config.settings import Settings, settings as default_settings


def get_reference_store(request: Request) -> ReferenceImageStore:
    """The store owned by the running application (set up in main.create_app)"""
    return request.app.state.reference_store


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or default_settings
