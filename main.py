import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from db_models import ContactRecord, FinalResponse, IdentifyRequest
from db_setup import Database
from exceptions import InvalidInput, StoreError, WriteConflict
from identity import identify as identify_contact

logger = logging.getLogger(__name__)


def get_database(request: Request) -> Database:
    return request.app.state.database


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level.upper())
        database = Database.from_settings(settings)
        database.init()
        app.state.database = database
        logger.info("Starting %s on %s", settings.app_title, settings.db_name)
        yield
        logger.info("Shutting down...")

    app = FastAPI(
        title=settings.app_title,
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Identify failed on %s: %s", request.url.path, exc)
        status_code = 409 if isinstance(exc, WriteConflict) else 503
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/")
    async def root():
        return {"message": "Bitespeed API is up"}

    # sync route: FastAPI runs it in the threadpool, off the event loop
    @app.post("/identify", response_model=FinalResponse)
    def identify(request: IdentifyRequest, database: Database = Depends(get_database)):
        contact = identify_contact(database, request.email, request.phoneNumber)
        return FinalResponse(contact=contact)

    @app.get("/contacts", response_model=List[ContactRecord])
    def list_contacts(database: Database = Depends(get_database)):
        with database.session() as store:
            return store.list_all()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
