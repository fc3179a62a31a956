"""
Main entry point for mediatrack.

Initializes all components and starts the server.
"""

import argparse
import logging
import os
from typing import Optional

import uvicorn

from .auth import TokenIssuer
from .catalog import MediaCatalog
from .collection import CollectionManager
from .config_manager import ConfigManager
from .database import Database
from .entries import EntryManager
from .guest import GuestManager
from .share import ShareManager
from .sync import SyncReconciler, create_media_resolver
from .user import UserManager
from .web.server import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


class MediaTrackServer:
    """Main server class that wires all components together."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize all components.

        Args:
            db_path: SQLite database path (defaults to ~/.mediatrack/mediatrack.db)
        """
        logger.info("Initializing mediatrack server...")

        self.database = Database(db_path)
        if not self.database.ping():
            raise RuntimeError("Database at %s is not reachable" % self.database.db_path)

        self.config_manager = ConfigManager(self.database)

        self.user_manager = UserManager(self.database)
        self.catalog = MediaCatalog(
            self.database, search_limit=self.config_manager.get_int("search_limit", 20)
        )
        self.entry_manager = EntryManager(self.database)
        self.collection_manager = CollectionManager(self.database)
        self.share_manager = ShareManager(
            self.database,
            self.collection_manager,
            self.entry_manager,
            expiry_months=self.config_manager.get_int("share_expiry_months", 1),
            enforce_expiry=self.config_manager.get_bool("enforce_share_expiry", False),
        )
        self.guest_manager = GuestManager(self.share_manager, self.entry_manager)

        resolver = create_media_resolver(self.config_manager.get("sync_media_match"), self.catalog)
        self.reconciler = SyncReconciler(resolver, self.entry_manager)

        self.token_issuer = TokenIssuer(
            self.config_manager.get("session_secret"),
            max_age_hours=self.config_manager.get_int("token_max_age_hours", 72),
        )

        self.web_app = create_app(
            self.database,
            self.config_manager,
            self.user_manager,
            self.catalog,
            self.entry_manager,
            self.collection_manager,
            self.share_manager,
            self.guest_manager,
            self.reconciler,
            self.token_issuer,
        )

        self.uvicorn_server = None

        logger.info("mediatrack server initialized")

    def run(self, host: str = "0.0.0.0", port: int = 8080):
        """Start the server (blocking)."""
        logger.info("Starting mediatrack server on %s:%s", host, port)
        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping mediatrack server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.database:
            self.database.close()

        logger.info("mediatrack server stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="mediatrack - personal media tracking API")
    parser.add_argument("--db", default=os.environ.get("MEDIATRACK_DB_PATH"), help="SQLite database path")
    parser.add_argument("--host", default=os.environ.get("MEDIATRACK_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("MEDIATRACK_PORT", "8080")))
    args = parser.parse_args()

    server = MediaTrackServer(db_path=args.db)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
