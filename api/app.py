"""
Sheet API — FastAPI app exposing the per-user character store.

Routes:
    GET    /api/characters               list the caller's characters
    POST   /api/characters               create (201, 400 on invalid data)
    GET    /api/characters/{id}          fetch one (404 if missing / not ours)
    PATCH  /api/characters/{id}          deep-merge a partial update
    DELETE /api/characters/{id}          delete (204)
    GET    /api/characters/{id}/sheet    derived numbers for the sheet
    GET    /api/ruleset                  reference tables
    GET    /health

Every /api/characters route resolves the owner first (see api/auth.py).
Errors are JSON: {"error": "..."}; validation failures add "details".
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import get_owner_id
from api.config import Settings
from rules.engine import derive_sheet
from rules.rulebook import RuleBook, default_rulebook, load_rulebook
from tools.character_store import CharacterStore, MemoryCharacterStore, MongoCharacterStore

logger = logging.getLogger("SheetAPI")

NOT_FOUND = {"error": "Character not found"}


def build_store(settings: Settings, rulebook: RuleBook) -> CharacterStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory character store, data is lost on restart.")
        return MemoryCharacterStore(rulebook=rulebook)
    return MongoCharacterStore(uri=settings.mongodb_uri, db_name=settings.db_name, rulebook=rulebook)


def _invalid(e: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid character data",
            "details": e.errors(include_url=False, include_context=False),
        },
    )


def create_app(
    store: Optional[CharacterStore] = None,
    settings: Optional[Settings] = None,
    rulebook: Optional[RuleBook] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if rulebook is None:
        rulebook = load_rulebook(settings.ruleset_path) if settings.ruleset_path else default_rulebook()
    store = store or build_store(settings, rulebook)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(store, MongoCharacterStore) and not store.is_connected:
            if await store.connect():
                await store.ensure_indexes()
            else:
                logger.error("Character store unavailable, character routes will fail with 500.")
        yield
        if isinstance(store, MongoCharacterStore):
            await store.close()

    app = FastAPI(title="Character Sheet API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.rulebook = rulebook

    # ------------------------------------------------------------------
    # Error shape
    # ------------------------------------------------------------------

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_invalid(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    @app.get("/api/characters")
    async def list_characters(owner_id: str = Depends(get_owner_id)):
        try:
            characters = await store.list(owner_id)
            return [c.to_document() for c in characters]
        except Exception as e:
            logger.error(f"Error fetching characters: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch characters"})

    @app.get("/api/characters/{character_id}")
    async def get_character(character_id: str, owner_id: str = Depends(get_owner_id)):
        try:
            character = await store.get(character_id, owner_id)
        except Exception as e:
            logger.error(f"Error fetching character {character_id}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch character"})
        if character is None:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return character.to_document()

    @app.post("/api/characters", status_code=201)
    async def create_character(
        data: Dict[str, Any] = Body(...),
        owner_id: str = Depends(get_owner_id),
    ):
        try:
            character = await store.create(data, owner_id)
            return character.to_document()
        except ValidationError as e:
            return _invalid(e)
        except Exception as e:
            logger.error(f"Error creating character: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to create character"})

    @app.patch("/api/characters/{character_id}")
    async def update_character(
        character_id: str,
        patch: Dict[str, Any] = Body(...),
        owner_id: str = Depends(get_owner_id),
    ):
        try:
            character = await store.update(character_id, owner_id, patch)
        except ValidationError as e:
            return _invalid(e)
        except Exception as e:
            logger.error(f"Error updating character {character_id}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to update character"})
        if character is None:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return character.to_document()

    @app.delete("/api/characters/{character_id}")
    async def delete_character(character_id: str, owner_id: str = Depends(get_owner_id)):
        try:
            deleted = await store.delete(character_id, owner_id)
        except Exception as e:
            logger.error(f"Error deleting character {character_id}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to delete character"})
        if not deleted:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return Response(status_code=204)

    @app.get("/api/characters/{character_id}/sheet")
    async def character_sheet(character_id: str, owner_id: str = Depends(get_owner_id)):
        try:
            character = await store.get(character_id, owner_id)
        except Exception as e:
            logger.error(f"Error fetching character {character_id}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch character"})
        if character is None:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return derive_sheet(character, rulebook).model_dump(mode="json")

    # ------------------------------------------------------------------
    # Reference data & health
    # ------------------------------------------------------------------

    @app.get("/api/ruleset")
    async def ruleset():
        return rulebook.to_dict()

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
