"""Card-matching engine: flip symbol/meaning pairs against one countdown."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .clock import SessionClock
from .errors import CatalogEmpty
from .scoring import match_score

logger = logging.getLogger(__name__)

MATCH_GAME_NAME = 'Kart Eşleştirme'

LOADING = 'loading'
ACTIVE = 'active'
SUCCEEDED = 'succeeded'
TIMED_OUT = 'timed_out'

SYMBOL = 'symbol'
MEANING = 'meaning'


@dataclass(frozen=True)
class Pair:
    symbol: str
    meaning: str


@dataclass(frozen=True)
class Card:
    id: str
    kind: str
    content: str
    pair_id: int

    def matches(self, other: 'Card') -> bool:
        return self.pair_id == other.pair_id and self.kind != other.kind


def build_deck(pairs: Sequence[Pair], shuffle: Callable[[list], None] = random.shuffle) -> List[Card]:
    """Two cards per pair, one of each kind, shuffled in place by ``shuffle``."""
    deck = []
    for pair_id, pair in enumerate(pairs):
        deck.append(Card(f'{SYMBOL}-{pair_id}', SYMBOL, pair.symbol, pair_id))
        deck.append(Card(f'{MEANING}-{pair_id}', MEANING, pair.meaning, pair_id))
    shuffle(deck)
    return deck


class MatchSession:
    kind = 'match'
    game_name = MATCH_GAME_NAME

    def __init__(
        self,
        pairs: Sequence[Pair],
        duration: int = 180,
        shuffle: Optional[Callable[[list], None]] = None,
        on_terminal: Optional[Callable[['MatchSession'], None]] = None,
    ):
        if not pairs:
            raise CatalogEmpty('no card pairs to play')
        self.pairs: List[Pair] = list(pairs)
        self.deck = build_deck(self.pairs, shuffle or random.shuffle)
        self.duration = int(duration)
        self.clock = SessionClock(self.duration)
        self.status = LOADING
        self.flipped: List[int] = []
        self.matched = set()
        self.click_count = 0
        self.on_terminal = on_terminal
        self._mismatch_token = 0
        self._mismatch_pending = False
        self._terminal_fired = False

    @property
    def terminal(self) -> bool:
        return self.status in (SUCCEEDED, TIMED_OUT)

    @property
    def time_remaining(self) -> int:
        return self.clock.remaining

    @property
    def score(self) -> Optional[int]:
        if self.status == SUCCEEDED:
            return match_score(len(self.pairs), self.click_count)
        if self.status == TIMED_OUT:
            return 0
        return None

    @property
    def pending_resolution(self) -> Optional[dict]:
        if self._mismatch_pending:
            return {'type': 'resolve_mismatch', 'token': self._mismatch_token}
        return None

    def start(self) -> None:
        if self.status != LOADING:
            return
        self.status = ACTIVE
        self.clock.start(self.duration)

    def flip(self, index: int) -> bool:
        """Reveal a card. Returns False when the click is ignored."""
        if not 0 <= index < len(self.deck):
            raise ValueError(f'card index out of range: {index}')
        if (self.status != ACTIVE or index in self.matched
                or index in self.flipped or len(self.flipped) >= 2):
            return False

        self.click_count += 1
        self.flipped.append(index)
        if len(self.flipped) < 2:
            return True

        first, second = (self.deck[i] for i in self.flipped)
        if first.matches(second):
            self.matched.update(self.flipped)
            self.flipped = []
            if len(self.matched) == len(self.deck):
                self.clock.cancel()
                self.status = SUCCEEDED
                logger.info('deck cleared in %s clicks, score=%s', self.click_count, self.score)
                self._fire_terminal()
        else:
            self._mismatch_token += 1
            self._mismatch_pending = True
        return True

    def resolve_mismatch(self, token: Optional[int] = None) -> bool:
        """Turn a mismatched pair face down again."""
        if not self._mismatch_pending:
            return False
        if token is not None and token != self._mismatch_token:
            return False
        self._mismatch_pending = False
        self.flipped = []
        return True

    def tick(self, generation: Optional[int] = None) -> bool:
        if generation is not None and generation != self.clock.generation:
            return False
        if self.status != ACTIVE:
            return False
        if not self.clock.tick():
            return False
        self.status = TIMED_OUT
        self.flipped = []
        self._mismatch_pending = False
        logger.info('match session timed out with %s/%s cards matched', len(self.matched), len(self.deck))
        self._fire_terminal()
        return True

    def end(self) -> None:
        self.clock.cancel()
        self._mismatch_pending = False

    def _fire_terminal(self) -> None:
        if self._terminal_fired:
            return
        self._terminal_fired = True
        if self.on_terminal is not None:
            self.on_terminal(self)

    def handle(self, event: dict):
        kind = (event or {}).get('type')
        if kind == 'flip':
            return self.flip(int(event['index']))
        if kind == 'resolve_mismatch':
            return self.resolve_mismatch(event.get('token'))
        if kind == 'tick':
            return self.tick(event.get('generation'))
        if kind == 'start':
            return self.start()
        raise ValueError(f'unknown match event: {kind!r}')

    def result(self) -> dict:
        return {
            'score': self.score,
            'details': {
                'click_count': self.click_count,
                'pairs_count': len(self.pairs),
                'time_remaining': self.time_remaining,
                'completed': self.status == SUCCEEDED,
                'failed': self.status == TIMED_OUT,
            },
        }

    def snapshot(self) -> dict:
        cards = []
        for i, card in enumerate(self.deck):
            face_up = i in self.matched or i in self.flipped
            cards.append({
                'index': i,
                'kind': card.kind if face_up else None,
                'content': card.content if face_up else None,
                'face_up': face_up,
                'matched': i in self.matched,
            })
        return {
            'kind': self.kind,
            'game_name': self.game_name,
            'status': self.status,
            'cards': cards,
            'flipped': list(self.flipped),
            'matched_count': len(self.matched),
            'pairs_count': len(self.pairs),
            'click_count': self.click_count,
            'time_remaining': self.time_remaining,
            'clock': self.clock.to_dict(),
            'score': self.score,
        }
