"""
MongoDB Client and Repositories.

Handles all database operations:
  - Connection management with graceful fallback
  - Sessions (one document per session, keyed by session id)
  - Assessment results (medical records)
  - Health worker roster and escalation notifications
  - Analytics events

The repositories raise PersistenceError when the database is unreachable
so the conversation layer can degrade instead of crashing.
"""

import logging
from datetime import datetime, timedelta

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

import config
from triage.errors import DispatchUnavailable, PersistenceError
from triage.models import (
    AnalyticsEvent,
    AssessmentResult,
    EscalationReason,
    Platform,
    Priority,
    Session,
    SessionStatus,
    Worker,
    utc_now,
)

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = [SessionStatus.COMPLETED.value, SessionStatus.TIMED_OUT.value]


class MongoDBClient:
    """Manages the MongoDB connection."""

    def __init__(self, uri: str | None = None, db_name: str | None = None, client: MongoClient | None = None):
        self.uri = uri or config.MONGODB_URI
        self.db_name = db_name or config.MONGODB_DB_NAME
        self.client = client
        self.db = None
        self.connected = False

        if client is not None:
            self.db = client[self.db_name]
            self.connected = True
        elif self.uri:
            self._connect()

    def _connect(self):
        """Establish MongoDB connection."""
        try:
            self.client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=5000,
                tz_aware=True,
            )
            # Test the connection
            self.client.admin.command("ping")
            self.db = self.client[self.db_name]
            self.connected = True
            logger.info("[MongoDB] Connected to database: %s", self.db_name)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error("[MongoDB] Connection failed: %s", e)
            self.connected = False

    def collection(self, name: str):
        """Return a collection, or raise PersistenceError when offline."""
        if not self.connected:
            raise PersistenceError("MongoDB is not connected")
        return self.db[name]

    def close(self):
        """Close the MongoDB connection."""
        if self.client:
            self.client.close()
            self.connected = False
            logger.info("[MongoDB] Connection closed.")


# ── Sessions ───────────────────────────────────────────────────────────────


class MongoSessionRepository:
    def __init__(self, db: MongoDBClient, collection_name: str = config.SESSIONS_COLLECTION):
        self.db = db
        self.collection_name = collection_name

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    def ensure_indexes(self) -> None:
        try:
            self.collection.create_index(
                [("user_id", ASCENDING), ("platform", ASCENDING), ("status", ASCENDING)]
            )
            self.collection.create_index([("status", ASCENDING), ("last_activity_at", ASCENDING)])
        except PyMongoError as e:
            raise PersistenceError(f"Could not create session indexes: {e}") from e

    def load(self, user_id: str, platform: Platform) -> Session | None:
        try:
            doc = self.collection.find_one(
                {
                    "user_id": user_id,
                    "platform": platform.value,
                    "status": {"$nin": TERMINAL_STATUSES},
                },
                sort=[("last_activity_at", DESCENDING)],
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load session: {e}") from e
        return Session.model_validate(doc) if doc else None

    def save(self, session: Session) -> None:
        try:
            self.collection.replace_one({"_id": session.id}, session.model_dump(by_alias=True), upsert=True)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to save session {session.id}: {e}") from e

    def list_expired(self, threshold_seconds: float, now: datetime) -> list[Session]:
        cutoff = now - timedelta(seconds=threshold_seconds)
        try:
            docs = list(self.collection.find({
                "status": SessionStatus.WAITING.value,
                "last_activity_at": {"$lt": cutoff},
            }))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to list expired sessions: {e}") from e
        return [Session.model_validate(doc) for doc in docs]


# ── Medical Records ────────────────────────────────────────────────────────


class MongoMedicalRecordSink:
    def __init__(self, db: MongoDBClient, collection_name: str = config.MEDICAL_RECORDS_COLLECTION):
        self.db = db
        self.collection_name = collection_name

    def write_assessment_result(self, user_id: str, result: AssessmentResult) -> None:
        doc = {"user_id": user_id, "recorded_at": utc_now(), **result.model_dump()}
        try:
            inserted = self.db.collection(self.collection_name).insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to write assessment result: {e}") from e
        logger.info("[MongoDB] Assessment result saved, ID: %s", inserted.inserted_id)


# ── Health Workers ─────────────────────────────────────────────────────────


class MongoHealthWorkerDispatch:
    """
    Assigns escalations to health workers stored in MongoDB.

    A worker is claimed by atomically incrementing current_load, so two
    concurrent escalations cannot both take a worker's last free slot.
    """

    def __init__(
        self,
        db: MongoDBClient,
        workers_collection: str = config.HEALTH_WORKERS_COLLECTION,
        escalations_collection: str = config.ESCALATIONS_COLLECTION,
    ):
        self.db = db
        self.workers_collection = workers_collection
        self.escalations_collection = escalations_collection

    def find_available(self, location: str | None, urgency: Priority, language: str = "en") -> Worker | None:
        query = {
            "is_online": True,
            "languages": language,
            "$expr": {"$lt": ["$current_load", "$max_concurrent_chats"]},
        }
        # Prefer someone local, then anyone
        attempts = [{**query, "location": location}, query] if location else [query]
        try:
            workers = self.db.collection(self.workers_collection)
            for q in attempts:
                doc = workers.find_one_and_update(
                    q,
                    {"$inc": {"current_load": 1}},
                    sort=[("current_load", ASCENDING)],
                    return_document=ReturnDocument.AFTER,
                )
                if doc:
                    return Worker.model_validate(doc)
        except (PyMongoError, PersistenceError) as e:
            raise DispatchUnavailable(f"Worker lookup failed: {e}") from e
        logger.info("[MongoDB] No %s-speaking worker available for %s escalation", language, urgency.value)
        return None

    def notify(self, worker_id: str, session_id: str, reason: EscalationReason, urgency: Priority) -> None:
        try:
            self.db.collection(self.escalations_collection).insert_one({
                "worker_id": worker_id,
                "session_id": session_id,
                "reason": reason.value,
                "urgency": urgency.value,
                "status": "pending",
                "created_at": utc_now(),
            })
        except (PyMongoError, PersistenceError) as e:
            raise DispatchUnavailable(f"Could not notify worker {worker_id}: {e}") from e

    def release(self, worker_id: str) -> None:
        """Give back the slot find_available claimed. Never drops below zero."""
        try:
            self.db.collection(self.workers_collection).update_one(
                {"_id": worker_id, "current_load": {"$gt": 0}},
                {"$inc": {"current_load": -1}},
            )
        except (PyMongoError, PersistenceError) as e:
            raise DispatchUnavailable(f"Could not release worker {worker_id}: {e}") from e


# ── Analytics ──────────────────────────────────────────────────────────────


class MongoAnalyticsSink:
    def __init__(self, db: MongoDBClient, collection_name: str = config.ANALYTICS_COLLECTION):
        self.db = db
        self.collection_name = collection_name

    def emit(self, event: AnalyticsEvent) -> None:
        try:
            self.db.collection(self.collection_name).insert_one(event.model_dump())
        except PyMongoError as e:
            raise PersistenceError(f"Failed to store analytics event: {e}") from e
