"""Hazard-spotting engine.

Players hunt for hidden rectangular zones in a sequence of images, each
image under its own countdown. Zones may carry a four-option quiz that must
be answered correctly before the zone counts as found.

Every timed behaviour is an explicit event (``tick``, ``resolve_quiz``), so
the whole machine can be driven by feeding it a list of events.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

from .clock import SessionClock
from .errors import AssetLoadFailed, CatalogEmpty
from .scoring import hazard_image_score, hazard_session_score

logger = logging.getLogger(__name__)

HAZARD_GAME_NAME = 'Tehlike Avı'

# Per-image statuses
LOADING = 'loading'
ACTIVE = 'active'
SUCCEEDED = 'succeeded'
TIMED_OUT = 'timed_out'

# Session statuses
IN_PROGRESS = 'in_progress'
COMPLETE = 'complete'


@dataclass(frozen=True)
class QuizChallenge:
    """Four answer options and the index of the correct one."""

    options: Tuple[str, str, str, str]
    correct_index: int = 0

    def __post_init__(self):
        if len(self.options) != 4:
            raise ValueError('a quiz needs exactly 4 options')
        if not 0 <= self.correct_index < 4:
            raise ValueError('correct_index must be between 0 and 3')


@dataclass(frozen=True)
class HazardZone:
    """Rectangle on a 0-100 percentage grid, origin top-left."""

    id: str
    x: float
    y: float
    width: float
    height: float
    quiz: Optional[QuizChallenge] = None

    def contains(self, px: float, py: float) -> bool:
        return (self.x <= px <= self.x + self.width
                and self.y <= py <= self.y + self.height)


@dataclass(frozen=True)
class ImageTarget:
    id: str
    url: str
    zones: Tuple[HazardZone, ...] = ()


@dataclass(frozen=True)
class RenderedBox:
    """Displayed box of the image element, in client pixels."""

    left: float
    top: float
    width: float
    height: float

    def to_percent(self, client_x: float, client_y: float) -> Tuple[float, float]:
        if self.width <= 0 or self.height <= 0:
            raise ValueError('rendered box has no area')
        return ((client_x - self.left) / self.width * 100,
                (client_y - self.top) / self.height * 100)


class ActiveQuiz:
    """A quiz on screen, options in shuffled order.

    Each slot keeps the original option index so the answer is judged on
    the option itself and never on where it landed after shuffling.
    """

    def __init__(self, zone: HazardZone, token: int, shuffle: Callable[[list], None]):
        self.zone = zone
        self.token = token
        order = list(range(4))
        shuffle(order)
        self.slots: List[Tuple[str, int]] = [(zone.quiz.options[i], i) for i in order]
        self.selected_slot: Optional[int] = None
        self.correct: Optional[bool] = None

    @property
    def answered(self) -> bool:
        return self.selected_slot is not None

    def choose(self, slot: int) -> Optional[bool]:
        if self.answered:
            return None
        if not 0 <= slot < len(self.slots):
            raise ValueError(f'quiz slot out of range: {slot}')
        self.selected_slot = slot
        self.correct = self.slots[slot][1] == self.zone.quiz.correct_index
        return self.correct

    def to_dict(self):
        return {
            'zone_id': self.zone.id,
            'token': self.token,
            'options': [text for text, _ in self.slots],
            'selected_slot': self.selected_slot,
            'correct': self.correct,
        }


@dataclass
class ImageState:
    status: str = LOADING
    found: Set[str] = field(default_factory=set)
    click_count: int = 0
    remaining: int = 0
    score: Optional[int] = None
    asset_error: Optional[str] = None


class HazardSession:
    kind = 'hazard'
    game_name = HAZARD_GAME_NAME

    def __init__(
        self,
        images: Sequence[ImageTarget],
        duration: int = 60,
        shuffle: Optional[Callable[[list], None]] = None,
        on_terminal: Optional[Callable[['HazardSession'], None]] = None,
        pause_clock_during_quiz: bool = False,
    ):
        if not images:
            raise CatalogEmpty('no hazard images to play')
        self.images: List[ImageTarget] = list(images)
        self.duration = int(duration)
        self.states = [ImageState(remaining=self.duration) for _ in self.images]
        self.index = 0
        self.clock = SessionClock(self.duration)
        self.status = IN_PROGRESS
        self.active_quiz: Optional[ActiveQuiz] = None
        self.time_up_notice = False
        self.on_terminal = on_terminal
        self.pause_clock_during_quiz = pause_clock_during_quiz
        self._shuffle = shuffle or random.shuffle
        self._quiz_seq = 0
        self._terminal_fired = False

    # ---- read side ----

    @property
    def current_image(self) -> ImageTarget:
        return self.images[self.index]

    @property
    def current_state(self) -> ImageState:
        return self.states[self.index]

    @property
    def is_last_image(self) -> bool:
        return self.index == len(self.images) - 1

    @property
    def terminal(self) -> bool:
        return self.status == COMPLETE

    @property
    def score(self) -> Optional[int]:
        if not self.terminal:
            return None
        return hazard_session_score(s.score or 0 for s in self.states)

    @property
    def pending_resolution(self) -> Optional[dict]:
        """Delayed event the runtime should deliver, if any."""
        if self.active_quiz is not None and self.active_quiz.answered:
            return {'type': 'resolve_quiz', 'token': self.active_quiz.token}
        return None

    # ---- image lifecycle ----

    def image_loaded(self) -> None:
        state = self.current_state
        if state.status != LOADING or self.terminal:
            return
        state.asset_error = None
        if not self.current_image.zones:
            state.status = SUCCEEDED
            state.score = hazard_image_score(0, 0)
            self._check_complete()
            return
        state.status = ACTIVE
        state.remaining = self.duration
        self.clock.reset(self.duration)

    def image_failed(self, reason: str = '') -> Optional[AssetLoadFailed]:
        state = self.current_state
        if state.status != LOADING:
            return None
        err = AssetLoadFailed(reason or f'could not load {self.current_image.url}')
        state.asset_error = str(err)
        logger.warning('image %s failed to load: %s', self.current_image.id, err)
        return err

    def retry_image(self) -> None:
        state = self.current_state
        if state.status == LOADING:
            state.asset_error = None

    # ---- play ----

    def click(self, x: float, y: float) -> Optional[str]:
        """Register a click at percentage coordinates.

        Returns the id of the zone that was hit, or None for a miss or a
        refused click. Refused clicks are not counted.
        """
        state = self.current_state
        if self.terminal or state.status != ACTIVE or self.active_quiz or self.time_up_notice:
            return None
        state.click_count += 1

        hit = None
        for zone in self.current_image.zones:
            if zone.id not in state.found and zone.contains(x, y):
                hit = zone
                break
        if hit is None:
            return None

        if hit.quiz is not None:
            self._quiz_seq += 1
            self.active_quiz = ActiveQuiz(hit, self._quiz_seq, self._shuffle)
            if self.pause_clock_during_quiz:
                self.clock.suspend()
        else:
            self._mark_found(hit.id)
        return hit.id

    def click_pointer(self, client_x: float, client_y: float, box: RenderedBox) -> Optional[str]:
        x, y = box.to_percent(client_x, client_y)
        return self.click(x, y)

    def answer_quiz(self, slot: int) -> Optional[bool]:
        if self.active_quiz is None:
            return None
        return self.active_quiz.choose(slot)

    def resolve_quiz(self, token: Optional[int] = None) -> bool:
        quiz = self.active_quiz
        if quiz is None or not quiz.answered:
            return False
        if token is not None and token != quiz.token:
            return False
        self._close_quiz()
        if quiz.correct:
            self._mark_found(quiz.zone.id)
        return True

    def dismiss_quiz(self) -> None:
        quiz = self.active_quiz
        if quiz is None:
            return
        if quiz.answered:
            self.resolve_quiz(quiz.token)
        else:
            self._close_quiz()

    def tick(self, generation: Optional[int] = None) -> bool:
        if generation is not None and generation != self.clock.generation:
            return False
        state = self.current_state
        if self.terminal or state.status != ACTIVE:
            return False
        expired = self.clock.tick()
        state.remaining = self.clock.remaining
        if expired:
            self._time_out()
        return expired

    def acknowledge_timeout(self) -> None:
        if not self.time_up_notice:
            return
        self.time_up_notice = False
        if not self.is_last_image:
            self._advance()

    def next_image(self) -> None:
        if self.time_up_notice:
            self.acknowledge_timeout()
            return
        if self.current_state.status == SUCCEEDED and not self.is_last_image:
            self._advance()

    def end(self) -> None:
        """Stop the clock when the owning session goes away."""
        self.clock.cancel()
        self.active_quiz = None

    # ---- transitions ----

    def _close_quiz(self) -> None:
        self.active_quiz = None
        self.clock.resume()

    def _mark_found(self, zone_id: str) -> None:
        state = self.current_state
        state.found.add(zone_id)
        if len(state.found) == len(self.current_image.zones):
            self.clock.cancel()
            state.status = SUCCEEDED
            state.score = hazard_image_score(len(self.current_image.zones), state.click_count)
            logger.info('image %s cleared in %s clicks, score=%s',
                        self.current_image.id, state.click_count, state.score)
            self._check_complete()

    def _time_out(self) -> None:
        state = self.current_state
        state.status = TIMED_OUT
        state.score = 0
        self.active_quiz = None
        self.time_up_notice = True
        logger.info('image %s timed out with %s/%s zones found',
                    self.current_image.id, len(state.found), len(self.current_image.zones))
        self._check_complete()

    def _advance(self) -> None:
        self.clock.cancel()
        self.active_quiz = None
        self.index += 1
        state = self.current_state
        state.click_count = 0
        state.remaining = self.duration

    def _check_complete(self) -> None:
        if not all(s.status in (SUCCEEDED, TIMED_OUT) for s in self.states):
            return
        self.status = COMPLETE
        self.clock.cancel()
        if self._terminal_fired:
            return
        self._terminal_fired = True
        if self.on_terminal is not None:
            self.on_terminal(self)

    # ---- engine surface ----

    def handle(self, event: dict):
        kind = (event or {}).get('type')
        if kind == 'click':
            if 'client_x' in event:
                box = RenderedBox(
                    float(event['left']), float(event['top']),
                    float(event['width']), float(event['height']),
                )
                return self.click_pointer(float(event['client_x']), float(event['client_y']), box)
            return self.click(float(event['x']), float(event['y']))
        if kind == 'answer_quiz':
            return self.answer_quiz(int(event['slot']))
        if kind == 'resolve_quiz':
            return self.resolve_quiz(event.get('token'))
        if kind == 'dismiss_quiz':
            return self.dismiss_quiz()
        if kind == 'tick':
            return self.tick(event.get('generation'))
        if kind == 'image_loaded':
            return self.image_loaded()
        if kind == 'image_failed':
            err = self.image_failed(event.get('reason', ''))
            return str(err) if err else None
        if kind == 'retry_image':
            return self.retry_image()
        if kind == 'acknowledge_timeout':
            return self.acknowledge_timeout()
        if kind == 'next_image':
            return self.next_image()
        raise ValueError(f'unknown hazard event: {kind!r}')

    def result(self) -> dict:
        scores = {i: s.score for i, s in enumerate(self.states) if s.score is not None}
        return {
            'score': self.score if self.terminal else None,
            'details': {
                'image_count': len(self.images),
                'image_scores': scores,
                'click_counts': {i: s.click_count for i, s in enumerate(self.states)},
                'completed_images': [i for i, s in enumerate(self.states) if s.status in (SUCCEEDED, TIMED_OUT)],
                'has_failed': any(v == 0 for v in scores.values()),
            },
        }

    def snapshot(self) -> dict:
        image = self.current_image
        state = self.current_state
        return {
            'kind': self.kind,
            'game_name': self.game_name,
            'status': self.status,
            'image_index': self.index,
            'image_count': len(self.images),
            'image': {
                'id': image.id,
                'url': image.url,
                'status': state.status,
                'asset_error': state.asset_error,
                # Only found zones are revealed to the client
                'found_zones': [
                    {'id': z.id, 'x': z.x, 'y': z.y, 'width': z.width, 'height': z.height}
                    for z in image.zones if z.id in state.found
                ],
                'found_count': len(state.found),
                'zone_count': len(image.zones),
                'click_count': state.click_count,
                'time_remaining': state.remaining,
                'score': state.score,
            },
            'image_statuses': [s.status for s in self.states],
            'image_scores': [s.score for s in self.states],
            'quiz': self.active_quiz.to_dict() if self.active_quiz else None,
            'time_up_notice': self.time_up_notice,
            'clock': self.clock.to_dict(),
            'score': self.score,
        }
