# Entry point for the FastAPI app
import os

from fastapi import FastAPI

from api.config.lifecycle import setup_lifecycle_events
from api.config.openapi import setup_openapi
from api.logging_config import configure_logging
from api.routes import relay
from api.settings import settings


configure_logging(
    log_dir=settings.LOG_DIR,
    log_level=settings.LOG_LEVEL,
    debug=settings.DEBUG,
    log_filename=settings.LOG_FILENAME,
    secrets=settings.secret_values(),
)

app = FastAPI(
    title="Backup Relay Service",
    description="Relays the latest backup artifact from an SFTP host to WebDAV storage, verifies it and enforces retention",
    version=settings.IMAGE_TAG
)

setup_openapi(app)
setup_lifecycle_events(app)

app.include_router(relay.router)


# Health check endpoint.
@app.get("/health")
def check_health():
    return {"status": "OK"}

# Get Image version.
@app.get("/version")
def get_version():
    return {"IMAGE_TAG": f"{settings.IMAGE_TAG}"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
