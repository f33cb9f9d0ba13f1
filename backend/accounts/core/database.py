import logging
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from accounts.core.config import settings

logger = logging.getLogger(__name__)

# Create MongoDB client - manages the connection pool
# connect=False defers the first connection until the first operation,
# so importing this module never touches the network
# tz_aware=True returns timezone-aware UTC datetimes from the driver
client: MongoClient = MongoClient(
    settings.get_mongo_uri(),
    tz_aware=True,
    connect=False,
)


def get_database() -> Database:
    """Database handle for the configured MONGO_DB_NAME"""
    return client[settings.MONGO_DB_NAME]


def get_db():
    """
    Dependency for getting the database handle.

    This is a FastAPI dependency that provides the database to route handlers.
    The client is process-scoped; connections are returned to the pool by the driver.
    Tests replace this dependency through app.dependency_overrides.
    """
    yield get_database()


def ensure_indexes(db: Database) -> None:
    """Create indexes the repositories rely on"""
    # Unique email is enforced by the store - concurrent signups with the same
    # email race here and the loser gets DuplicateKeyError
    db["users"].create_index([("email", ASCENDING)], unique=True, name="email_unique")
    db["users"].create_index(
        [("reset_password_token", ASCENDING)],
        name="reset_password_token",
        sparse=True,
    )


def connect() -> Database:
    """Verify connectivity and prepare indexes - called on app startup"""
    db = get_database()
    client.admin.command("ping")
    ensure_indexes(db)
    logger.info("MongoDB connection established...")
    return db


def close() -> None:
    """Close all pooled connections - called on app shutdown"""
    client.close()
    logger.info("MongoDB connection closed")
