"""
FastAPI web server for mediatrack.

Provides the REST API for media, entries, collections, sync and sharing.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from ..auth import TokenIssuer
from ..catalog import MediaCatalog
from ..collection import CollectionManager
from ..config_manager import ConfigManager
from ..database import Database, utcnow
from ..entries import EntryManager
from ..errors import MediaTrackError, NotFoundError
from ..guest import GuestManager
from ..models import EntryFields, GuestEntry, MediaItem, MediaSpec, SyncItem, User
from ..share import ShareManager
from ..sync import SyncReconciler
from ..user import UserManager

logger = logging.getLogger(__name__)

MediaTypeName = Literal["video", "book", "anime", "game", "tv", "movie"]
StatusName = Literal["planned", "in_progress", "completed", "on_hold", "dropped"]


# Request models
class LoginRequest(BaseModel):
    email: str
    name: Optional[str] = None


class MediaRequest(BaseModel):
    type: MediaTypeName
    title: str
    original_title: Optional[str] = None
    year: Optional[int] = None
    cover_url: Optional[str] = None
    creators: Optional[Dict[str, Any]] = None
    genres: Optional[List[str]] = None
    duration: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_spec(self) -> MediaSpec:
        return MediaSpec(**self.model_dump())


class EntryFieldsRequest(BaseModel):
    status: StatusName
    rating: Optional[float] = None
    review_md: Optional[str] = None
    progress: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_fields(self) -> EntryFields:
        return EntryFields(
            status=self.status,
            rating=self.rating,
            review_md=self.review_md,
            progress=self.progress,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class CreateEntryRequest(EntryFieldsRequest):
    media_id: str


class UpdateEntryRequest(BaseModel):
    """Partial update; only fields present in the body are changed."""

    status: Optional[StatusName] = None
    rating: Optional[float] = None
    review_md: Optional[str] = None
    progress: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class SyncMediaRequest(MediaRequest):
    # Checked per item by the reconciler
    type: str


class SyncEntryRequest(EntryFieldsRequest):
    """One sync item; an unknown status or media type fails only this item."""

    status: str
    media: SyncMediaRequest


class SyncRequest(BaseModel):
    entries: List[SyncEntryRequest]


class CreateCollectionRequest(BaseModel):
    title: str
    is_public: bool = False
    entry_ids: Optional[List[str]] = None


class UpdateCollectionRequest(BaseModel):
    title: Optional[str] = None
    is_public: Optional[bool] = None
    entry_ids: Optional[List[str]] = None


class CollectionEntriesRequest(BaseModel):
    entry_ids: List[str]


class GuestEntryRequest(EntryFieldsRequest):
    media_id: str

    def to_guest_entry(self) -> GuestEntry:
        return GuestEntry(media_id=self.media_id, fields=self.to_fields())


class GuestMediaRequest(MediaRequest):
    id: str


class GuestSnapshotRequest(BaseModel):
    entries: List[GuestEntryRequest]
    media: List[GuestMediaRequest]


class MergeRequest(BaseModel):
    guest_entries: List[GuestEntryRequest]


# Dependency to get components
def get_database(request: Request) -> Database:
    """Get Database from app state."""
    return request.app.state.database


def get_user_manager(request: Request) -> UserManager:
    """Get UserManager from app state."""
    return request.app.state.user_manager


def get_catalog(request: Request) -> MediaCatalog:
    """Get MediaCatalog from app state."""
    return request.app.state.catalog


def get_entry_manager(request: Request) -> EntryManager:
    """Get EntryManager from app state."""
    return request.app.state.entry_manager


def get_collection_manager(request: Request) -> CollectionManager:
    """Get CollectionManager from app state."""
    return request.app.state.collection_manager


def get_share_manager(request: Request) -> ShareManager:
    """Get ShareManager from app state."""
    return request.app.state.share_manager


def get_guest_manager(request: Request) -> GuestManager:
    """Get GuestManager from app state."""
    return request.app.state.guest_manager


def get_reconciler(request: Request) -> SyncReconciler:
    """Get SyncReconciler from app state."""
    return request.app.state.reconciler


def get_token_issuer(request: Request) -> TokenIssuer:
    """Get TokenIssuer from app state."""
    return request.app.state.token_issuer


def current_user(request: Request) -> User:
    """
    Resolve the authenticated user.

    Accepts an `Authorization: Bearer <token>` header or a logged-in session.
    """
    user_id = None
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        user_id = request.app.state.token_issuer.verify(header[7:].strip())
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
    else:
        user_id = request.session.get("user_id")

    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        return request.app.state.user_manager.get_user(user_id)
    except NotFoundError:
        raise HTTPException(status_code=401, detail="Unknown user")


def create_app(
    database: Database,
    config_manager: ConfigManager,
    user_manager: UserManager,
    catalog: MediaCatalog,
    entry_manager: EntryManager,
    collection_manager: CollectionManager,
    share_manager: ShareManager,
    guest_manager: GuestManager,
    reconciler: SyncReconciler,
    token_issuer: TokenIssuer,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        database: Database instance (used for health checks)
        config_manager: ConfigManager instance
        user_manager: UserManager instance
        catalog: MediaCatalog instance
        entry_manager: EntryManager instance
        collection_manager: CollectionManager instance
        share_manager: ShareManager instance
        guest_manager: GuestManager instance
        reconciler: SyncReconciler instance
        token_issuer: TokenIssuer instance

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="mediatrack", version="1.0.0")

    app.add_middleware(SessionMiddleware, secret_key=config_manager.get("session_secret"))

    # Store components in app state
    app.state.database = database
    app.state.config_manager = config_manager
    app.state.user_manager = user_manager
    app.state.catalog = catalog
    app.state.entry_manager = entry_manager
    app.state.collection_manager = collection_manager
    app.state.share_manager = share_manager
    app.state.guest_manager = guest_manager
    app.state.reconciler = reconciler
    app.state.token_issuer = token_issuer

    @app.exception_handler(MediaTrackError)
    async def handle_mediatrack_error(request: Request, exc: MediaTrackError):
        if exc.status_code >= 500:
            logger.error("Error handling %s %s: %s", request.method, request.url.path, exc,
                         exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    # Health
    @app.get("/health")
    @app.get("/api/health")
    async def health(db: Database = Depends(get_database)):
        """Liveness check including the database."""
        database_ok = db.ping()
        return {
            "status": "ok" if database_ok else "degraded",
            "timestamp": utcnow().isoformat(),
            "database": database_ok,
        }

    # Authentication endpoints
    @app.post("/api/auth/login")
    async def login(
        request: Request,
        request_data: LoginRequest,
        user_mgr: UserManager = Depends(get_user_manager),
        issuer: TokenIssuer = Depends(get_token_issuer),
    ):
        """Log in by email, creating the account on first login."""
        user = user_mgr.get_or_create_user(request_data.email, request_data.name)
        request.session["user_id"] = user.id
        return {"token": issuer.issue(user.id), "user": user}

    @app.post("/api/auth/logout")
    async def logout(request: Request):
        """Forget the session; bearer tokens are simply discarded by the client."""
        request.session.pop("user_id", None)
        return {"message": "Logged out successfully"}

    @app.get("/api/auth/me")
    async def get_profile(user: User = Depends(current_user)):
        return user

    # Media endpoints
    @app.post("/api/media", status_code=201)
    async def create_media(
        request_data: MediaRequest,
        user: User = Depends(current_user),
        media_catalog: MediaCatalog = Depends(get_catalog),
    ):
        """Add a media item to the catalog."""
        return media_catalog.create(request_data.to_spec())

    @app.get("/api/media/search")
    async def search_media(
        q: str = "",
        type: Optional[MediaTypeName] = None,
        media_catalog: MediaCatalog = Depends(get_catalog),
    ):
        """Search the catalog by title substring."""
        if not q.strip():
            raise HTTPException(status_code=400, detail="query parameter required")
        return media_catalog.search(q, type)

    @app.get("/api/media/{media_id}")
    async def get_media(media_id: str, media_catalog: MediaCatalog = Depends(get_catalog)):
        return media_catalog.get(media_id)

    @app.put("/api/media/{media_id}")
    async def update_media(
        media_id: str,
        request_data: MediaRequest,
        user: User = Depends(current_user),
        media_catalog: MediaCatalog = Depends(get_catalog),
    ):
        """Replace the descriptive fields of a media item."""
        return media_catalog.update(media_id, request_data.to_spec())

    # Entry endpoints
    @app.get("/api/entries")
    async def list_entries(
        status: Optional[StatusName] = None,
        type: Optional[MediaTypeName] = None,
        user: User = Depends(current_user),
        entry_mgr: EntryManager = Depends(get_entry_manager),
    ):
        """List the caller's entries, most recently updated first."""
        return entry_mgr.list_by_user(user.id, status, type)

    @app.post("/api/entries", status_code=201)
    async def create_entry(
        request_data: CreateEntryRequest,
        user: User = Depends(current_user),
        entry_mgr: EntryManager = Depends(get_entry_manager),
    ):
        return entry_mgr.create(user.id, request_data.media_id, request_data.to_fields())

    @app.post("/api/entries/sync")
    async def sync_entries(
        request_data: SyncRequest,
        user: User = Depends(current_user),
        sync_reconciler: SyncReconciler = Depends(get_reconciler),
    ):
        """
        Reconcile a batch of media+entry pairs with stored data.

        Always answers 200; per-item failures are reported in `errors`.
        """
        items = [
            SyncItem(media=entry.media.to_spec(), fields=entry.to_fields())
            for entry in request_data.entries
        ]
        result = sync_reconciler.sync(user.id, items)

        response: Dict[str, Any] = {
            "message": result.message,
            "synced_entries": result.synced_entries,
            "count": result.count,
        }
        if result.errors:
            response["errors"] = result.errors
        return response

    @app.get("/api/entries/{entry_id}")
    async def get_entry(
        entry_id: str,
        user: User = Depends(current_user),
        entry_mgr: EntryManager = Depends(get_entry_manager),
    ):
        return entry_mgr.get_owned(entry_id, user.id)

    @app.patch("/api/entries/{entry_id}")
    async def update_entry(
        entry_id: str,
        request_data: UpdateEntryRequest,
        user: User = Depends(current_user),
        entry_mgr: EntryManager = Depends(get_entry_manager),
    ):
        """Update the fields present in the request body."""
        entry_mgr.get_owned(entry_id, user.id)
        return entry_mgr.update(entry_id, **request_data.model_dump(exclude_unset=True))

    @app.delete("/api/entries/{entry_id}")
    async def delete_entry(
        entry_id: str,
        user: User = Depends(current_user),
        entry_mgr: EntryManager = Depends(get_entry_manager),
    ):
        entry_mgr.get_owned(entry_id, user.id)
        entry_mgr.delete(entry_id)
        return {"message": "Entry deleted successfully"}

    # Collection endpoints
    @app.get("/api/collections")
    async def list_collections(
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        return collection_mgr.list_by_user(user.id)

    @app.post("/api/collections", status_code=201)
    async def create_collection(
        request_data: CreateCollectionRequest,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        return collection_mgr.create(
            user.id, request_data.title, request_data.is_public, request_data.entry_ids
        )

    @app.get("/api/collections/{collection_id}")
    async def get_collection(
        collection_id: str,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        """Get a collection with its entries (public ones are visible to everyone)."""
        return collection_mgr.get(collection_id, user.id)

    @app.patch("/api/collections/{collection_id}")
    async def update_collection(
        collection_id: str,
        request_data: UpdateCollectionRequest,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        return collection_mgr.update(
            collection_id,
            user.id,
            title=request_data.title,
            is_public=request_data.is_public,
            entry_ids=request_data.entry_ids,
        )

    @app.delete("/api/collections/{collection_id}")
    async def delete_collection(
        collection_id: str,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        collection_mgr.delete(collection_id, user.id)
        return {"message": "Collection deleted"}

    @app.post("/api/collections/{collection_id}/entries")
    async def add_collection_entries(
        collection_id: str,
        request_data: CollectionEntriesRequest,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        """Append entries; entries already in the collection are ignored."""
        return collection_mgr.add_entries(collection_id, user.id, request_data.entry_ids)

    @app.delete("/api/collections/{collection_id}/entries")
    async def remove_collection_entries(
        collection_id: str,
        request_data: CollectionEntriesRequest,
        user: User = Depends(current_user),
        collection_mgr: CollectionManager = Depends(get_collection_manager),
    ):
        return collection_mgr.remove_entries(collection_id, user.id, request_data.entry_ids)

    @app.post("/api/collections/{collection_id}/share")
    async def share_collection(
        collection_id: str,
        user: User = Depends(current_user),
        share_mgr: ShareManager = Depends(get_share_manager),
    ):
        share = share_mgr.share_collection(collection_id, user.id)
        return {"share_url": "/s/" + share.token, "token": share.token}

    @app.post("/api/profile/share")
    async def share_profile(
        user: User = Depends(current_user),
        share_mgr: ShareManager = Depends(get_share_manager),
    ):
        """Share the caller's full entry list."""
        share = share_mgr.share_profile(user.id)
        return {"share_url": "/s/" + share.token, "token": share.token}

    # Guest endpoints
    @app.post("/api/guest/snapshot")
    async def create_snapshot(
        request_data: GuestSnapshotRequest,
        guest_mgr: GuestManager = Depends(get_guest_manager),
    ):
        """Issue a snapshot token for guest data (the data itself is not stored)."""
        entries = [entry.to_guest_entry() for entry in request_data.entries]
        media = [MediaItem(**item.model_dump()) for item in request_data.media]
        share = guest_mgr.create_snapshot(entries, media)
        return {"share_url": "/s/" + share.token, "token": share.token}

    @app.post("/api/guest/merge")
    async def merge_guest_entries(
        request_data: MergeRequest,
        user: User = Depends(current_user),
        guest_mgr: GuestManager = Depends(get_guest_manager),
    ):
        """Copy guest entries into the caller's account."""
        guest_entries = [entry.to_guest_entry() for entry in request_data.guest_entries]
        created = guest_mgr.merge_to_account(user.id, guest_entries)
        return {"message": "Guest data merged successfully", "count": len(created)}

    # Public share endpoints
    @app.get("/api/s/{token}")
    @app.get("/s/{token}")
    async def get_public_share(
        token: str,
        share_mgr: ShareManager = Depends(get_share_manager),
    ):
        """Resolve a share token to the live collection or entry list."""
        return share_mgr.resolve(token)

    return app
