# ============================================================================
# src/prescription_triage/triage/history.py
# ============================================================================
"""
Patient History Store

Persists what the pipeline learns about a patient across interactions:
- chronic conditions and active medications (context for chat)
- running maximum / last severity score and a severity event log
- scanned prescriptions
- the chat conversation log

Raw sqlite3, one connection per operation, JSON for list fields. Every
read-modify-write runs inside BEGIN IMMEDIATE so concurrent messages from
the same patient cannot lose updates.
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..core.models import ChatTurn, MedicationEntity, SeverityAssessment


logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data") / "history.db"

NO_HISTORY_CONTEXT = "No previous history found."


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PatientHistoryStore:
    """
    SQLite-backed patient history.

    Args:
        db_path: Database file (created if missing)
        busy_timeout: Seconds a writer waits for the database lock
    """

    def __init__(self, db_path: Optional[Path] = None, busy_timeout: float = 30.0):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.busy_timeout = busy_timeout
        self._init_database()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the RESERVED lock from the first statement."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout, isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS patient_history (
                    user_id              TEXT PRIMARY KEY,
                    chronic_conditions   TEXT NOT NULL DEFAULT '[]',
                    active_medications   TEXT NOT NULL DEFAULT '[]',
                    max_severity_score   REAL NOT NULL DEFAULT 0,
                    last_severity_score  REAL,
                    last_updated         TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS severity_events (
                    assessment_id   TEXT NOT NULL,
                    user_id         TEXT NOT NULL,
                    score           REAL NOT NULL,
                    level           TEXT NOT NULL,
                    is_emergency    INTEGER NOT NULL,
                    condition       TEXT,
                    source          TEXT NOT NULL DEFAULT 'ai_detection',
                    created_at      TEXT NOT NULL,
                    PRIMARY KEY (user_id, assessment_id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_severity_events_user
                ON severity_events (user_id, created_at)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS prescriptions (
                    prescription_id TEXT PRIMARY KEY,
                    user_id         TEXT NOT NULL,
                    raw_text        TEXT NOT NULL,
                    source          TEXT,
                    medications     TEXT NOT NULL DEFAULT '[]',
                    created_at      TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversation_turns (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    turn_id         TEXT,
                    user_id         TEXT,
                    query           TEXT NOT NULL,
                    context         TEXT NOT NULL,
                    reply           TEXT NOT NULL,
                    severity        TEXT,
                    created_at      TEXT NOT NULL,
                    UNIQUE (user_id, turn_id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_turns_user
                ON conversation_turns (user_id, id)
            """)
            # NULL user ids never collide under UNIQUE, anonymous turns need their own index
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_turns_anonymous
                ON conversation_turns (turn_id) WHERE user_id IS NULL
            """)
        logger.debug(f"History store initialized: {self.db_path}")

    @staticmethod
    def _ensure_patient(conn: sqlite3.Connection, user_id: str):
        conn.execute(
            "INSERT OR IGNORE INTO patient_history (user_id, last_updated) VALUES (?, ?)",
            (user_id, _now()),
        )

    # ------------------------------------------------------------------
    # Severity
    # ------------------------------------------------------------------
    def record_severity(
        self,
        user_id: str,
        assessment: SeverityAssessment,
        assessment_id: Optional[str] = None,
        source: str = "ai_detection",
    ) -> bool:
        """
        Log an assessment and merge it into the patient's running maximum.

        Idempotent per (user_id, assessment_id): a retried submission is ignored.
        Different patients may reuse the same assessment id.

        Returns:
            True if the assessment was applied, False if it was a duplicate
        """
        assessment_id = assessment_id or str(uuid.uuid4())
        now = _now()

        with self._transaction() as conn:
            inserted = conn.execute("""
                INSERT OR IGNORE INTO severity_events
                    (assessment_id, user_id, score, level, is_emergency, condition, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                assessment_id,
                user_id,
                round(assessment.score, 1),
                assessment.level.value,
                1 if assessment.is_emergency else 0,
                assessment.condition,
                source,
                now,
            )).rowcount

            if not inserted:
                logger.debug(f"Severity {assessment_id} already recorded for {user_id}")
                return False

            conn.execute("""
                INSERT INTO patient_history
                    (user_id, max_severity_score, last_severity_score, last_updated)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    max_severity_score = MAX(patient_history.max_severity_score, excluded.max_severity_score),
                    last_severity_score = excluded.last_severity_score,
                    last_updated = excluded.last_updated
            """, (user_id, assessment.score, assessment.score, now))

        logger.info(f"Recorded severity {assessment.score} ({assessment.level.value}) for {user_id}")
        return True

    def severity_history(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT assessment_id, score, level, is_emergency, condition, source, created_at
                FROM severity_events WHERE user_id = ? ORDER BY created_at, rowid
            """, (user_id,)).fetchall()
        return [
            {
                "assessmentId": row[0],
                "score": row[1],
                "level": row[2],
                "isEmergency": bool(row[3]),
                "detectedDisease": row[4],
                "source": row[5],
                "timestamp": row[6],
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Conditions / medications
    # ------------------------------------------------------------------
    @staticmethod
    def _merge_conditions(conn: sqlite3.Connection, user_id: str, conditions: Iterable[str], now: str) -> List[str]:
        row = conn.execute(
            "SELECT chronic_conditions FROM patient_history WHERE user_id = ?", (user_id,)
        ).fetchone()
        current = json.loads(row[0])
        known = {c.lower() for c in current}
        for condition in conditions:
            condition = condition.strip()
            if condition and condition.lower() not in known:
                current.append(condition)
                known.add(condition.lower())
        conn.execute(
            "UPDATE patient_history SET chronic_conditions = ?, last_updated = ? WHERE user_id = ?",
            (json.dumps(current), now, user_id),
        )
        return current

    @staticmethod
    def _merge_medications(conn: sqlite3.Connection, user_id: str, entries: List[Dict[str, Any]], now: str):
        row = conn.execute(
            "SELECT active_medications FROM patient_history WHERE user_id = ?", (user_id,)
        ).fetchone()
        active = json.loads(row[0])
        known = {m["name"].lower() for m in active}
        for entry in entries:
            if entry["name"].lower() not in known:
                active.append(entry)
                known.add(entry["name"].lower())
        conn.execute(
            "UPDATE patient_history SET active_medications = ?, last_updated = ? WHERE user_id = ?",
            (json.dumps(active), now, user_id),
        )

    def add_conditions(self, user_id: str, conditions: Iterable[str]) -> List[str]:
        """Append chronic conditions not already on record (case-insensitive)."""
        with self._transaction() as conn:
            self._ensure_patient(conn, user_id)
            return self._merge_conditions(conn, user_id, conditions, _now())

    def update(
        self,
        user_id: str,
        conditions: Iterable[str] = (),
        medications: Iterable[MedicationEntity] = (),
    ) -> Dict[str, Any]:
        """
        Merge manually reported conditions and medications into the
        patient's record, creating it if needed. Both lists are
        deduplicated case-insensitively against what is already stored.

        Returns:
            The updated patient record
        """
        now = _now()
        entries = [{**m.to_dict(), "prescriptionId": None} for m in medications]

        with self._transaction() as conn:
            self._ensure_patient(conn, user_id)
            self._merge_conditions(conn, user_id, conditions, now)
            self._merge_medications(conn, user_id, entries, now)

        logger.info(f"Updated history for {user_id}")
        return self.get(user_id)

    def add_medications(
        self,
        user_id: str,
        medications: List[MedicationEntity],
        raw_text: str = "",
        source: Optional[str] = None,
        prescription_id: Optional[str] = None,
    ) -> str:
        """
        Store a scanned prescription and add its medications to the
        patient's active list.

        Returns:
            The prescription id
        """
        prescription_id = prescription_id or str(uuid.uuid4())
        now = _now()
        entries = [{**m.to_dict(), "prescriptionId": prescription_id} for m in medications]

        with self._transaction() as conn:
            conn.execute("""
                INSERT OR IGNORE INTO prescriptions
                    (prescription_id, user_id, raw_text, source, medications, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (prescription_id, user_id, raw_text, source, json.dumps(entries), now))

            self._ensure_patient(conn, user_id)
            self._merge_medications(conn, user_id, entries, now)

        logger.info(f"Stored prescription {prescription_id} with {len(entries)} medications for {user_id}")
        return prescription_id

    def get_prescription(self, prescription_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("""
                SELECT prescription_id, user_id, raw_text, source, medications, created_at
                FROM prescriptions WHERE prescription_id = ?
            """, (prescription_id,)).fetchone()
        if row is None:
            return None
        return {
            "prescriptionId": row[0],
            "userId": row[1],
            "rawText": row[2],
            "source": row[3],
            "medications": json.loads(row[4]),
            "scannedAt": row[5],
        }

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Patient record, or None for an unknown user."""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT chronic_conditions, active_medications, max_severity_score,
                       last_severity_score, last_updated
                FROM patient_history WHERE user_id = ?
            """, (user_id,)).fetchone()
        if row is None:
            return None
        return {
            "userId": user_id,
            "chronicConditions": json.loads(row[0]),
            "activeMedications": json.loads(row[1]),
            "maxSeverityScore": row[2],
            "lastSeverityScore": row[3],
            "lastUpdated": row[4],
        }

    def get_context(self, user_id: Optional[str]) -> str:
        """Patient history rendered as the chat context line."""
        record = self.get(user_id) if user_id else None
        if not record or not (record["chronicConditions"] or record["activeMedications"]):
            return NO_HISTORY_CONTEXT

        conditions = ", ".join(record["chronicConditions"]) or "None recorded"
        medications = ", ".join(
            f"{m['name']} ({m['dosage']})" for m in record["activeMedications"]
        ) or "None recorded"
        return f"Patient History: {conditions}. Current Meds: {medications}."

    # ------------------------------------------------------------------
    # Conversation log
    # ------------------------------------------------------------------
    def append_turn(self, turn: ChatTurn) -> bool:
        """Append a chat turn; a turn_id already on record for the same user is ignored."""
        with self._connect() as conn:
            inserted = conn.execute("""
                INSERT OR IGNORE INTO conversation_turns
                    (turn_id, user_id, query, context, reply, severity, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                turn.turn_id,
                turn.user_id,
                turn.query,
                turn.context,
                turn.reply,
                json.dumps(turn.severity.to_dict()) if turn.severity else None,
                turn.created_at.isoformat(),
            )).rowcount
        return bool(inserted)

    def get_turns(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent turns for a user, oldest first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT turn_id, query, reply, severity, created_at
                FROM conversation_turns WHERE user_id = ?
                ORDER BY id DESC LIMIT ?
            """, (user_id, limit)).fetchall()
        return [
            {
                "turnId": row[0],
                "query": row[1],
                "reply": row[2],
                "severity": json.loads(row[3]) if row[3] else None,
                "createdAt": row[4],
            }
            for row in reversed(rows)
        ]
