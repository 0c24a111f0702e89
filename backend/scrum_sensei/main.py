import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .db import Database
from .errors import install_exception_handlers
from .logging_utils import configure_logging
from .settings import Settings, get_settings
from .storage import PublicStorage
from .routers import advice, audio, dashboard, health, materials, progress, quizzes, uploads


LOGGER = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
	settings = settings or get_settings()
	configure_logging(settings.log_level)

	database = Database(settings.database_url)
	database.create_all()
	storage = PublicStorage(settings.public_dir)
	storage.ensure()

	app = FastAPI(title="Scrum Sensei API")
	app.state.settings = settings
	app.state.database = database
	app.state.storage = storage
	install_exception_handlers(app)

	app.include_router(health.router)
	app.include_router(materials.admin_router)
	app.include_router(materials.router)
	app.include_router(uploads.router)
	app.include_router(quizzes.router)
	app.include_router(audio.router)
	app.include_router(progress.router)
	app.include_router(advice.router)
	app.include_router(dashboard.router)

	# Uploaded PDFs and generated audio under /public/uploads and /public/audio
	app.mount("/public", StaticFiles(directory=storage.root), name="public")

	@app.on_event("shutdown")
	def shutdown_event():
		database.dispose()

	LOGGER.info("Scrum Sensei ready (db=%s, public=%s)", settings.database_url, storage.root)
	return app
