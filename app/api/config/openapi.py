"""OpenAPI schema tweaks for the relay API."""
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

ADMIN_KEY_SCHEME = "X-Admin-Key"

# Relay endpoints reachable without the admin key; the key is optional there.
PUBLIC_PATHS = {"/relay/status"}


def setup_openapi(app: FastAPI) -> None:
    """
    Publish a single `X-Admin-Key` security scheme and attach it to every
    protected relay operation, so Swagger UI prompts for the key once.

    Args:
        app: The FastAPI application instance
    """
    def relay_openapi():
        if app.openapi_schema is None:
            schema = get_openapi(
                title=app.title,
                version=app.version,
                description=app.description,
                routes=app.routes,
            )
            schema.setdefault("components", {})["securitySchemes"] = {
                ADMIN_KEY_SCHEME: {
                    "type": "apiKey",
                    "in": "header",
                    "name": ADMIN_KEY_SCHEME,
                    "description": "Admin key for triggering relay runs and reading source metadata",
                }
            }
            required = [{ADMIN_KEY_SCHEME: []}]
            optional = [{}, {ADMIN_KEY_SCHEME: []}]
            for path, operations in schema.get("paths", {}).items():
                if not path.startswith("/relay/"):
                    continue
                for operation in operations.values():
                    operation["security"] = optional if path in PUBLIC_PATHS else required
            app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = relay_openapi
