"""DuckDB Storage Adapter.

This adapter implements the StoragePort contract for persisting episodes,
their codes, the audit trail, revert requests, clinician queries and dead
letters to DuckDB, an in-process database.

Security Impact:
    - The audit_log table is insert-only; this adapter has no update or delete for it
    - Code sets are replaced as a whole inside one transaction
    - Connection path is validated before connecting

Architecture:
    - Implements StoragePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - One connection guarded by a re-entrant lock; ``transaction()`` groups writes
    - Timestamps are stored as naive UTC and returned timezone-aware
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

import duckdb

from clinical_coding.domain.models import (
    AuditAction,
    AuditEntry,
    ClinicianQuery,
    DeadLetter,
    Diagnosis,
    Episode,
    EpisodeStatus,
    Procedure,
    RevertRequest,
    RevertStatus,
)
from clinical_coding.domain.ports import NotFoundError, Result, StorageError, StoragePort
from clinical_coding.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS episodes (
        episode_id VARCHAR PRIMARY KEY,
        nhs_number VARCHAR,
        patient_name VARCHAR,
        admission_date DATE NOT NULL,
        discharge_date DATE,
        specialty VARCHAR,
        source_text VARCHAR,
        status VARCHAR NOT NULL,
        submitted_by VARCHAR,
        submitted_on TIMESTAMP,
        reviewed_by VARCHAR,
        reviewed_on TIMESTAMP,
        review_notes VARCHAR,
        created_on TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS episode_diagnoses (
        episode_id VARCHAR NOT NULL,
        position INTEGER NOT NULL,
        code VARCHAR NOT NULL,
        description VARCHAR,
        is_primary BOOLEAN NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS episode_procedures (
        episode_id VARCHAR NOT NULL,
        position INTEGER NOT NULL,
        code VARCHAR NOT NULL,
        description VARCHAR,
        performed_on DATE
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS audit_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        seq BIGINT NOT NULL DEFAULT nextval('audit_seq'),
        audit_id VARCHAR PRIMARY KEY,
        event_timestamp TIMESTAMP NOT NULL,
        performed_by VARCHAR NOT NULL,
        action VARCHAR NOT NULL,
        entity_type VARCHAR NOT NULL,
        entity_id VARCHAR NOT NULL,
        payload VARCHAR NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS revert_requests (
        request_id VARCHAR PRIMARY KEY,
        episode_id VARCHAR NOT NULL,
        audit_id VARCHAR NOT NULL,
        requested_by VARCHAR NOT NULL,
        requested_on TIMESTAMP NOT NULL,
        status VARCHAR NOT NULL,
        resolved_by VARCHAR,
        resolved_on TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS clinician_queries (
        query_id VARCHAR PRIMARY KEY,
        episode_id VARCHAR NOT NULL,
        to_clinician VARCHAR,
        subject VARCHAR,
        body VARCHAR,
        created_on TIMESTAMP NOT NULL,
        created_by VARCHAR,
        external_reference VARCHAR,
        response_text VARCHAR,
        responded_on TIMESTAMP,
        responded_by VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dead_letters (
        dead_letter_id VARCHAR PRIMARY KEY,
        kind VARCHAR NOT NULL,
        payload_json VARCHAR NOT NULL,
        error VARCHAR,
        attempts INTEGER NOT NULL DEFAULT 0,
        created_on TIMESTAMP NOT NULL,
        last_tried_on TIMESTAMP,
        quarantined BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_diagnoses_episode ON episode_diagnoses(episode_id)",
    "CREATE INDEX IF NOT EXISTS idx_procedures_episode ON episode_procedures(episode_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log(entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(event_timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_queries_episode ON clinician_queries(episode_id)",
]

EPISODE_COLUMNS = (
    "episode_id, nhs_number, patient_name, admission_date, discharge_date, specialty, "
    "source_text, status, submitted_by, submitted_on, reviewed_by, reviewed_on, "
    "review_notes, created_on"
)
AUDIT_COLUMNS = "audit_id, event_timestamp, performed_by, action, entity_type, entity_id, payload"
REVERT_COLUMNS = (
    "request_id, episode_id, audit_id, requested_by, requested_on, status, resolved_by, resolved_on"
)
QUERY_COLUMNS = (
    "query_id, episode_id, to_clinician, subject, body, created_on, created_by, "
    "external_reference, response_text, responded_on, responded_by"
)
DEAD_LETTER_COLUMNS = (
    "dead_letter_id, kind, payload_json, error, attempts, created_on, last_tried_on, quarantined"
)


def to_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC for TIMESTAMP columns."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class DuckDBAdapter(StoragePort):
    """DuckDB implementation of StoragePort for the coding workflow.

    Parameters:
        db_config: DatabaseConfig from configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)

    Example Usage:
        ```python
        from clinical_coding.infrastructure.config_manager import get_database_config

        adapter = DuckDBAdapter(db_config=get_database_config())
        result = adapter.initialize_schema()
        if result.is_success():
            with adapter.transaction():
                adapter.replace_episode_codes(episode_id, dx, px)
                adapter.append_audit(entry)
        ```
    """

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        db_path: Optional[str] = None
    ):
        """Initialize DuckDB adapter.

        If both db_config and db_path are provided, db_config takes precedence.
        If neither is provided, defaults to in-memory database.
        """
        if db_config:
            self.db_path = db_config.db_path or ":memory:"
        elif db_path:
            self.db_path = db_path
        else:
            self.db_path = ":memory:"

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialized = False
        self._lock = threading.RLock()
        self._tx_depth = 0

        # Validate db_path to prevent writing to a missing directory
        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise StorageError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create DuckDB connection (created lazily, then reused)."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except Exception as e:
                raise StorageError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                )
        return self._connection

    def initialize_schema(self) -> Result[None]:
        """Initialize database schema (tables, sequence, indexes).

        Returns:
            Result[None]: Success or failure result
        """
        try:
            with self._lock:
                conn = self._get_connection()
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
                self._initialized = True
            logger.info("Database schema initialized successfully")
            return Result.success_result(None)

        except Exception as e:
            error_msg = f"Failed to initialize schema: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                StorageError(error_msg, operation="initialize_schema"),
                error_type="StorageError"
            )

    def _ensure_schema(self) -> None:
        if not self._initialized:
            result = self.initialize_schema()
            if result.is_failure():
                raise StorageError(result.error, operation="initialize_schema")

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Group writes into one atomic unit.

        Nested blocks join the outermost transaction. The outermost block
        commits on success and rolls back on any exception, including
        cancellation.
        """
        with self._lock:
            self._ensure_schema()
            conn = self._get_connection()
            outermost = self._tx_depth == 0
            if outermost:
                conn.begin()
            self._tx_depth += 1
            try:
                yield conn
            except BaseException:
                self._tx_depth -= 1
                if outermost:
                    conn.rollback()
                    logger.debug("Rolled back transaction")
                raise
            else:
                self._tx_depth -= 1
                if outermost:
                    conn.commit()

    @contextmanager
    def _reading(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._lock:
            self._ensure_schema()
            yield self._get_connection()

    def _write(self, operation: str, sql: str, params: list) -> List[tuple]:
        try:
            with self.transaction() as conn:
                return conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            error_msg = f"Failed to {operation}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg, operation=operation) from e

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def add_episode(self, episode: Episode) -> str:
        try:
            with self.transaction() as conn:
                conn.execute(
                    f"INSERT INTO episodes ({EPISODE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        episode.episode_id,
                        episode.nhs_number,
                        episode.patient_name,
                        episode.admission_date,
                        episode.discharge_date,
                        episode.specialty,
                        episode.source_text,
                        episode.status.value,
                        episode.submitted_by,
                        to_db_timestamp(episode.submitted_on),
                        episode.reviewed_by,
                        to_db_timestamp(episode.reviewed_on),
                        episode.review_notes,
                        to_db_timestamp(episode.created_on),
                    ]
                )
                self._insert_codes(conn, episode.episode_id, episode.diagnoses, episode.procedures)
        except duckdb.Error as e:
            raise StorageError(f"Failed to add episode: {str(e)}", operation="add_episode") from e
        return episode.episode_id

    def get_episode(self, episode_id: str) -> Optional[Episode]:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {EPISODE_COLUMNS} FROM episodes WHERE episode_id = ?",
                [episode_id]
            ).fetchone()
            if row is None:
                return None
            return self._episode_from_row(conn, row)

    def list_episodes(
        self,
        limit: int = 50,
        status: Optional[EpisodeStatus] = None,
        statuses: Optional[Sequence[EpisodeStatus]] = None
    ) -> List[Episode]:
        wanted = [status] if status is not None else list(statuses or [])
        sql = f"SELECT {EPISODE_COLUMNS} FROM episodes"
        params: List[Any] = []
        if wanted:
            sql += f" WHERE status IN ({', '.join('?' for _ in wanted)})"
            params.extend(s.value for s in wanted)
        sql += " ORDER BY created_on DESC LIMIT ?"
        params.append(max(1, limit))

        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._episode_from_row(conn, row) for row in rows]

    def update_episode_status(self, episode: Episode) -> None:
        updated = self._write(
            "update episode status",
            """
            UPDATE episodes
            SET status = ?, submitted_by = ?, submitted_on = ?,
                reviewed_by = ?, reviewed_on = ?, review_notes = ?
            WHERE episode_id = ?
            RETURNING episode_id
            """,
            [
                episode.status.value,
                episode.submitted_by,
                to_db_timestamp(episode.submitted_on),
                episode.reviewed_by,
                to_db_timestamp(episode.reviewed_on),
                episode.review_notes,
                episode.episode_id,
            ]
        )
        if not updated:
            raise NotFoundError(
                f"Episode {episode.episode_id} not found",
                entity_type="Episode",
                entity_id=episode.episode_id
            )

    def replace_episode_codes(
        self,
        episode_id: str,
        diagnoses: List[Diagnosis],
        procedures: List[Procedure],
        source_text: Optional[str] = None
    ) -> None:
        try:
            with self.transaction() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM episodes WHERE episode_id = ?", [episode_id]
                ).fetchone()
                if exists is None:
                    raise NotFoundError(
                        f"Episode {episode_id} not found",
                        entity_type="Episode",
                        entity_id=episode_id
                    )
                conn.execute("DELETE FROM episode_diagnoses WHERE episode_id = ?", [episode_id])
                conn.execute("DELETE FROM episode_procedures WHERE episode_id = ?", [episode_id])
                self._insert_codes(conn, episode_id, diagnoses, procedures)
                if source_text is not None:
                    conn.execute(
                        "UPDATE episodes SET source_text = ? WHERE episode_id = ?",
                        [source_text, episode_id]
                    )
        except duckdb.Error as e:
            raise StorageError(
                f"Failed to replace codes: {str(e)}",
                operation="replace_episode_codes",
                details={"episode_id": episode_id}
            ) from e

        logger.debug(f"Replaced codes for episode {episode_id}: {len(diagnoses)} dx, {len(procedures)} px")

    def _insert_codes(
        self,
        conn: duckdb.DuckDBPyConnection,
        episode_id: str,
        diagnoses: List[Diagnosis],
        procedures: List[Procedure]
    ) -> None:
        if diagnoses:
            conn.executemany(
                "INSERT INTO episode_diagnoses VALUES (?, ?, ?, ?, ?)",
                [[episode_id, i, d.code, d.description, d.is_primary] for i, d in enumerate(diagnoses)]
            )
        if procedures:
            conn.executemany(
                "INSERT INTO episode_procedures VALUES (?, ?, ?, ?, ?)",
                [[episode_id, i, p.code, p.description, p.performed_on] for i, p in enumerate(procedures)]
            )

    def _episode_from_row(self, conn: duckdb.DuckDBPyConnection, row: tuple) -> Episode:
        episode_id = row[0]
        dx_rows = conn.execute(
            "SELECT code, description, is_primary FROM episode_diagnoses WHERE episode_id = ? ORDER BY position",
            [episode_id]
        ).fetchall()
        px_rows = conn.execute(
            "SELECT code, description, performed_on FROM episode_procedures WHERE episode_id = ? ORDER BY position",
            [episode_id]
        ).fetchall()

        return Episode(
            episode_id=episode_id,
            nhs_number=row[1] or "",
            patient_name=row[2] or "",
            admission_date=row[3],
            discharge_date=row[4],
            specialty=row[5] or "",
            source_text=row[6] or "",
            status=EpisodeStatus(row[7]),
            submitted_by=row[8],
            submitted_on=from_db_timestamp(row[9]),
            reviewed_by=row[10],
            reviewed_on=from_db_timestamp(row[11]),
            review_notes=row[12],
            created_on=from_db_timestamp(row[13]),
            diagnoses=[Diagnosis(code=c, description=d or "", is_primary=bool(p)) for c, d, p in dx_rows],
            procedures=[Procedure(code=c, description=d or "", performed_on=p) for c, d, p in px_rows],
        )

    # ------------------------------------------------------------------
    # Audit log (insert-only)
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditEntry) -> str:
        self._write(
            "append audit entry",
            f"INSERT INTO audit_log ({AUDIT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                entry.audit_id,
                to_db_timestamp(entry.timestamp),
                entry.performed_by,
                entry.action.value,
                entry.entity_type,
                entry.entity_id,
                entry.payload.model_dump_json(by_alias=True),
            ]
        )
        return entry.audit_id

    def get_audit(self, audit_id: str) -> Optional[AuditEntry]:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {AUDIT_COLUMNS} FROM audit_log WHERE audit_id = ?", [audit_id]
            ).fetchone()
        return self._audit_from_row(row) if row else None

    def list_audit(self, limit: int = 200, entity_id: Optional[str] = None) -> List[AuditEntry]:
        sql = f"SELECT {AUDIT_COLUMNS} FROM audit_log"
        params: List[Any] = []
        if entity_id is not None:
            sql += " WHERE entity_id = ?"
            params.append(entity_id)
        sql += " ORDER BY event_timestamp DESC, seq DESC LIMIT ?"
        params.append(max(1, limit))

        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._audit_from_row(row) for row in rows]

    def get_last_audit_for_entity(self, entity_id: str, action: AuditAction) -> Optional[AuditEntry]:
        with self._reading() as conn:
            row = conn.execute(
                f"""
                SELECT {AUDIT_COLUMNS} FROM audit_log
                WHERE entity_id = ? AND action = ?
                ORDER BY event_timestamp DESC, seq DESC
                LIMIT 1
                """,
                [entity_id, action.value]
            ).fetchone()
        return self._audit_from_row(row) if row else None

    def _audit_from_row(self, row: tuple) -> AuditEntry:
        return AuditEntry.model_validate({
            "audit_id": row[0],
            "timestamp": from_db_timestamp(row[1]),
            "performed_by": row[2],
            "action": row[3],
            "entity_type": row[4],
            "entity_id": row[5],
            "payload": json.loads(row[6]),
        })

    # ------------------------------------------------------------------
    # Revert requests
    # ------------------------------------------------------------------

    def add_revert_request(self, request: RevertRequest) -> str:
        self._write(
            "add revert request",
            f"INSERT INTO revert_requests ({REVERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                request.request_id,
                request.episode_id,
                request.audit_id,
                request.requested_by,
                to_db_timestamp(request.requested_on),
                request.status.value,
                request.resolved_by,
                to_db_timestamp(request.resolved_on),
            ]
        )
        return request.request_id

    def get_revert_request(self, request_id: str) -> Optional[RevertRequest]:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {REVERT_COLUMNS} FROM revert_requests WHERE request_id = ?", [request_id]
            ).fetchone()
        if row is None:
            return None
        return RevertRequest(
            request_id=row[0],
            episode_id=row[1],
            audit_id=row[2],
            requested_by=row[3],
            requested_on=from_db_timestamp(row[4]),
            status=RevertStatus(row[5]),
            resolved_by=row[6],
            resolved_on=from_db_timestamp(row[7]),
        )

    def resolve_revert_request(
        self,
        request_id: str,
        status: RevertStatus,
        resolved_by: str,
        resolved_on: datetime
    ) -> bool:
        updated = self._write(
            "resolve revert request",
            """
            UPDATE revert_requests
            SET status = ?, resolved_by = ?, resolved_on = ?
            WHERE request_id = ? AND status = ?
            RETURNING request_id
            """,
            [status.value, resolved_by, to_db_timestamp(resolved_on), request_id, RevertStatus.PENDING.value]
        )
        return bool(updated)

    # ------------------------------------------------------------------
    # Clinician queries
    # ------------------------------------------------------------------

    def add_query(self, query: ClinicianQuery) -> str:
        self._write(
            "add clinician query",
            f"INSERT INTO clinician_queries ({QUERY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                query.query_id,
                query.episode_id,
                query.to_clinician,
                query.subject,
                query.body,
                to_db_timestamp(query.created_on),
                query.created_by,
                query.external_reference,
                query.response_text,
                to_db_timestamp(query.responded_on),
                query.responded_by,
            ]
        )
        return query.query_id

    def get_query(self, query_id: str) -> Optional[ClinicianQuery]:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {QUERY_COLUMNS} FROM clinician_queries WHERE query_id = ?", [query_id]
            ).fetchone()
        if row is None:
            return None
        return ClinicianQuery(
            query_id=row[0],
            episode_id=row[1],
            to_clinician=row[2] or "",
            subject=row[3] or "",
            body=row[4] or "",
            created_on=from_db_timestamp(row[5]),
            created_by=row[6] or "system",
            external_reference=row[7],
            response_text=row[8],
            responded_on=from_db_timestamp(row[9]),
            responded_by=row[10],
        )

    def update_query_response(
        self,
        query_id: str,
        responded_by: Optional[str],
        response_text: str,
        responded_on: datetime
    ) -> bool:
        updated = self._write(
            "update query response",
            """
            UPDATE clinician_queries
            SET responded_by = ?, response_text = ?, responded_on = ?
            WHERE query_id = ?
            RETURNING query_id
            """,
            [responded_by, response_text, to_db_timestamp(responded_on), query_id]
        )
        return bool(updated)

    # ------------------------------------------------------------------
    # Dead letters
    # ------------------------------------------------------------------

    def add_dead_letter(self, dead_letter: DeadLetter) -> str:
        self._write(
            "add dead letter",
            f"INSERT INTO dead_letters ({DEAD_LETTER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                dead_letter.dead_letter_id,
                dead_letter.kind,
                dead_letter.payload_json,
                dead_letter.error,
                dead_letter.attempts,
                to_db_timestamp(dead_letter.created_on),
                to_db_timestamp(dead_letter.last_tried_on),
                dead_letter.quarantined,
            ]
        )
        return dead_letter.dead_letter_id

    def get_dead_letter(self, dead_letter_id: str) -> Optional[DeadLetter]:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {DEAD_LETTER_COLUMNS} FROM dead_letters WHERE dead_letter_id = ?", [dead_letter_id]
            ).fetchone()
        return self._dead_letter_from_row(row) if row else None

    def list_dead_letters(self, limit: int = 100) -> List[DeadLetter]:
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT {DEAD_LETTER_COLUMNS} FROM dead_letters ORDER BY created_on DESC LIMIT ?",
                [max(1, limit)]
            ).fetchall()
        return [self._dead_letter_from_row(row) for row in rows]

    def record_dead_letter_attempt(
        self,
        dead_letter_id: str,
        tried_on: datetime,
        error: Optional[str] = None
    ) -> None:
        updated = self._write(
            "record dead letter attempt",
            """
            UPDATE dead_letters
            SET attempts = attempts + 1, last_tried_on = ?, error = COALESCE(?, error)
            WHERE dead_letter_id = ?
            RETURNING dead_letter_id
            """,
            [to_db_timestamp(tried_on), error, dead_letter_id]
        )
        if not updated:
            raise NotFoundError(
                f"Dead letter {dead_letter_id} not found",
                entity_type="DeadLetter",
                entity_id=dead_letter_id
            )

    def _dead_letter_from_row(self, row: tuple) -> DeadLetter:
        return DeadLetter(
            dead_letter_id=row[0],
            kind=row[1],
            payload_json=row[2],
            error=row[3] or "",
            attempts=row[4],
            created_on=from_db_timestamp(row[5]),
            last_tried_on=from_db_timestamp(row[6]),
            quarantined=bool(row[7]),
        )

    def close(self) -> None:
        """Close storage connection and release resources."""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                    self._connection = None
                    self._initialized = False
                    logger.info("Closed DuckDB connection")
                except Exception as e:
                    logger.warning(f"Error closing connection: {str(e)}")
