from safety_games import db
from datetime import datetime
import json


class Firm(db.Model):
    __tablename__ = 'firm'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False, index=True)
    contact = db.Column(db.String(256), nullable=True)
    games = db.Column(db.Text, nullable=True)  # JSON-encoded list of game configs

    def game_list(self):
        try:
            games = json.loads(self.games) if self.games else []
        except Exception:
            games = []
        return games if isinstance(games, list) else []

    def set_games(self, games):
        self.games = json.dumps(games, ensure_ascii=False)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact': self.contact,
            'games': self.game_list(),
        }


class GameScore(db.Model):
    __tablename__ = 'game_score'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(128), nullable=False, index=True)
    firm_name = db.Column(db.String(128), nullable=False, index=True)
    game_name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    details = db.Column(db.Text, nullable=True)  # JSON-encoded engine details
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        try:
            details = json.loads(self.details) if self.details else {}
        except Exception:
            details = {}
        return {
            'id': self.id,
            'player_id': self.player_id,
            'firm_name': self.firm_name,
            'game_name': self.game_name,
            'score': self.score,
            'details': details,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
