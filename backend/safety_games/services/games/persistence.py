"""Best-score-wins persistence.

At most one record is kept per (player, firm, game). A new score replaces
the stored one only when strictly higher; the very first attempt is always
stored, even at 0. A per-session guard makes the whole sequence run at most
once per session.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from safety_games import db
from safety_games.models import GameScore
from .errors import ScoreLookupFailed, ScoreWriteFailed

logger = logging.getLogger(__name__)

CREATED = 'created'
REPLACED = 'replaced'
SKIPPED = 'skipped'
FAILED = 'failed'
ALREADY_SAVED = 'already_saved'


@dataclass
class ScoreRecord:
    player_id: str
    firm_name: str
    game_name: str
    score: int
    details: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class SaveResult:
    outcome: str
    record_id: Optional[int] = None
    previous_best: Optional[int] = None
    error: Optional[str] = None


class ScoreGuard:
    """Per-session test-and-set flag guarding the save sequence."""

    def __init__(self):
        self._set = False
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        with self._lock:
            if self._set:
                return False
            self._set = True
            return True

    def release(self) -> None:
        with self._lock:
            self._set = False

    @property
    def is_set(self) -> bool:
        return self._set


class SqlScoreStore:
    """Score store backed by the ``game_score`` table."""

    def list_scores(self, player_id=None, firm_name=None, game_name=None) -> List[ScoreRecord]:
        try:
            q = GameScore.query
            if player_id is not None:
                q = q.filter_by(player_id=player_id)
            if firm_name is not None:
                q = q.filter_by(firm_name=firm_name)
            if game_name is not None:
                q = q.filter_by(game_name=game_name)
            rows = q.all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ScoreLookupFailed(str(exc)) from exc
        return [_to_record(r) for r in rows]

    def create_score(self, record: ScoreRecord) -> int:
        row = GameScore(
            player_id=record.player_id,
            firm_name=record.firm_name,
            game_name=record.game_name,
            score=int(record.score),
            details=json.dumps(record.details or {}, ensure_ascii=False),
            created_at=record.created_at or datetime.utcnow(),
        )
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ScoreWriteFailed(str(exc)) from exc
        return row.id

    def delete_score(self, record_id: int) -> None:
        try:
            GameScore.query.filter_by(id=record_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ScoreWriteFailed(str(exc)) from exc


def _to_record(row: GameScore) -> ScoreRecord:
    try:
        details = json.loads(row.details) if row.details else {}
    except Exception:
        details = {}
    return ScoreRecord(
        player_id=row.player_id,
        firm_name=row.firm_name,
        game_name=row.game_name,
        score=row.score,
        details=details,
        created_at=row.created_at,
        id=row.id,
    )


def save_best_score(store, record: ScoreRecord, guard: ScoreGuard) -> SaveResult:
    """Arbitrate ``record`` against stored scores and persist it if it wins.

    The guard is taken before any store call and released only when the
    attempt failed in a way that should allow a retry.
    """
    if not guard.acquire():
        return SaveResult(ALREADY_SAVED)

    player_id = (record.player_id or '').strip()
    firm_name = (record.firm_name or '').strip()
    if not player_id or not firm_name:
        guard.release()
        logger.warning('score not saved: empty player id or firm name')
        return SaveResult(FAILED, error='player id and firm name are required')

    try:
        existing = store.list_scores(player_id=player_id, firm_name=firm_name, game_name=record.game_name)
    except ScoreLookupFailed as exc:
        guard.release()
        logger.warning('score lookup failed for %s/%s/%s: %s', player_id, firm_name, record.game_name, exc)
        return SaveResult(FAILED, error=str(exc))

    previous_best = max((r.score for r in existing), default=None)
    if existing and record.score <= previous_best:
        return SaveResult(SKIPPED, previous_best=previous_best)

    new_record = ScoreRecord(
        player_id=player_id,
        firm_name=firm_name,
        game_name=record.game_name,
        score=int(record.score),
        details=record.details,
        created_at=record.created_at or datetime.utcnow(),
    )
    try:
        for old in existing:
            store.delete_score(old.id)
        record_id = store.create_score(new_record)
    except ScoreWriteFailed as exc:
        guard.release()
        logger.warning('score write failed for %s/%s/%s: %s', player_id, firm_name, record.game_name, exc)
        return SaveResult(FAILED, previous_best=previous_best, error=str(exc))

    return SaveResult(REPLACED if existing else CREATED, record_id=record_id, previous_best=previous_best)


def firm_scores(firm_name: str, game_name: Optional[str] = None) -> List[dict]:
    """Scoreboard rows for a firm: best score first, newest first on ties."""
    # Compared in Python: SQL lower() is ASCII-only on SQLite
    needle = (firm_name or '').strip().lower()
    try:
        q = GameScore.query
        if game_name:
            q = q.filter_by(game_name=game_name)
        rows = q.order_by(GameScore.score.desc(), GameScore.created_at.desc()).all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise ScoreLookupFailed(str(exc)) from exc
    return [r.to_dict() for r in rows if (r.firm_name or '').strip().lower() == needle]
