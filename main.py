import os
import logging
import importlib
from pathlib import Path
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from config.settings import Settings, settings as default_settings
from api.reference_images.reference_images_store import ReferenceImageStore, build_reference_store

logger = logging.getLogger(__name__)

API_DIR = Path(__file__).parent / "api"


#load all routes
def load_routes(directory: Path):
    """
    Import every *_routes.py under api/ by its package name
    (api.<feature>.<feature>_routes) and collect their routers.
    """
    routers = []
    root = directory.parent
    for item in sorted(directory.rglob("*_routes.py")):
        module_name = ".".join(item.relative_to(root).with_suffix("").parts)
        module = importlib.import_module(module_name)
        if hasattr(module, "router"):
            routers.append(module.router)
    return routers


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ReferenceImageStore] = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title=settings.APP_NAME)
    # the store lives as long as the app; nothing else holds a reference to it
    app.state.settings = settings
    app.state.reference_store = store or build_reference_store(settings)

    # volume static file mount
    upload_dir = Path(settings.UPLOAD_DIR)
    settings.reference_images_dir.mkdir(parents=True, exist_ok=True)
    app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=upload_dir), name="uploads")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Authorization", "Content-Type"],
    )

    for router in load_routes(API_DIR):
        app.include_router(router, prefix="/api")

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    logger.info(
        "%s started with %s reference store",
        settings.APP_NAME, type(app.state.reference_store).__name__,
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", default_settings.PORT or 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=True)
