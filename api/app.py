from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_config
from api.routes.admin import router as admin_router
from api.routes.documents import router as documents_router
from api.routes.jobs import router as jobs_router
from api.routes.search import router as search_router
from api.routes.wordcloud import router as wordcloud_router
from docvault.logging_config import setup_logging


def create_app() -> FastAPI:
    config = get_config()
    setup_logging(config.log_level, config.log_file)

    app = FastAPI(title="Docvault API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(documents_router)
    app.include_router(jobs_router)
    app.include_router(search_router)
    app.include_router(wordcloud_router)
    app.include_router(admin_router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
