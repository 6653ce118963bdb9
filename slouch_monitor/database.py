# Database Module - SQLAlchemy Core (Procedural, No ORM Classes)
from typing import Optional
from sqlalchemy import create_engine, MetaData, Table, Column, String, Text, DateTime, select, insert, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func
from slouch_monitor import config
from slouch_monitor import logger

metadata = MetaData()

# Calibration Store Table (key -> JSON document)
calibration_store_table = Table(
    'calibration_store',
    metadata,
    Column('storage_key', String(100), primary_key=True),
    Column('value_json', Text, nullable=False),  # Serialized CalibrationProfile
    Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now()),
)


def create_store_engine(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across calls"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )
    return create_engine(database_url, echo=False, pool_pre_ping=True)


class KeyValueStore:
    """Persistence collaborator: get/set/remove JSON text by key"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        self.engine = create_store_engine(self.database_url)
        self.init_database()

    def init_database(self) -> bool:
        """Create all tables if they don't exist"""
        try:
            metadata.create_all(self.engine)
            return True
        except SQLAlchemyError as e:
            logger.log_error("Database Initialization Failed", e, {"url": self.database_url})
            return False

    def test_connection(self) -> bool:
        """Test database connectivity"""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(func.count()).select_from(calibration_store_table))
            return True
        except SQLAlchemyError as e:
            logger.log_error("Database Connection Failed", e)
            return False

    def drop_all_tables(self) -> bool:
        """Drop all tables managed by this metadata (use with caution!)"""
        try:
            metadata.drop_all(self.engine, checkfirst=True)
            logger.log_warning("All Managed Tables Dropped", {"url": self.database_url})
            return True
        except SQLAlchemyError as e:
            logger.log_error("Drop Tables Failed", e)
            return False

    def get(self, key: str) -> Optional[str]:
        """
        Fetch the stored JSON text for a key

        Returns:
            JSON string, or None if absent or unreadable
        """
        try:
            with self.engine.connect() as conn:
                query = select(calibration_store_table.c.value_json).where(
                    calibration_store_table.c.storage_key == key
                )
                result = conn.execute(query).fetchone()
            return result[0] if result else None
        except SQLAlchemyError as e:
            logger.log_error("Store Read Failed", e, {"key": key})
            return None

    def set(self, key: str, value_json: str) -> bool:
        """Insert or replace the JSON text for a key"""
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(
                    select(calibration_store_table.c.storage_key).where(
                        calibration_store_table.c.storage_key == key
                    )
                ).fetchone()

                if exists:
                    conn.execute(
                        update(calibration_store_table).where(
                            calibration_store_table.c.storage_key == key
                        ).values(value_json=value_json)
                    )
                else:
                    conn.execute(
                        insert(calibration_store_table).values(
                            storage_key=key,
                            value_json=value_json
                        )
                    )
            return True
        except SQLAlchemyError as e:
            logger.log_error("Store Write Failed", e, {"key": key})
            return False

    def remove(self, key: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    delete(calibration_store_table).where(
                        calibration_store_table.c.storage_key == key
                    )
                )
        except SQLAlchemyError as e:
            logger.log_error("Store Delete Failed", e, {"key": key})
