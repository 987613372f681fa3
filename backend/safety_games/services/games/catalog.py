"""Read-only access to the firm/game catalog.

Every loader returns fresh engine objects built from the stored JSON, so a
session can never mutate catalog rows.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from safety_games.models import Firm
from .errors import CatalogEmpty, CatalogUnavailable
from .hazard import HAZARD_GAME_NAME, HazardZone, ImageTarget, QuizChallenge
from .matching import MATCH_GAME_NAME, Pair

logger = logging.getLogger(__name__)

ACTIVE = 'active'
PENDING = 'pending'
INACTIVE = 'inactive'

_STATUS_ALIASES = {
    'aktif': ACTIVE,
    'active': ACTIVE,
    'beklemede': PENDING,
    'pending': PENDING,
    'pasif': INACTIVE,
    'inactive': INACTIVE,
}

GAME_SLUGS = {
    'tehlike-avi': HAZARD_GAME_NAME,
    'kart-eslestirme': MATCH_GAME_NAME,
}

GAME_DESCRIPTIONS = {
    HAZARD_GAME_NAME: 'Riskleri hızlıca tespit edin ve puan toplayın.',
    MATCH_GAME_NAME: 'Eşleşmeleri bulun, güvenlik ipuçlarını pekiştirin.',
}


def normalize_status(value) -> str:
    return _STATUS_ALIASES.get(str(value or '').strip().lower(), INACTIVE)


def resolve_game_name(value: str) -> str:
    """Accept a route slug or a catalog game name."""
    key = (value or '').strip()
    if key.lower() in GAME_SLUGS:
        return GAME_SLUGS[key.lower()]
    for name in GAME_SLUGS.values():
        if key.lower() == name.lower():
            return name
    raise CatalogEmpty(f'unknown game: {value!r}')


def slug_for(game_name: str) -> Optional[str]:
    for slug, name in GAME_SLUGS.items():
        if name == game_name:
            return slug
    return None


def get_firm_by_name(name: str) -> Optional[Firm]:
    """Case-insensitive lookup; exact match first, then containment either way."""
    needle = (name or '').strip().lower()
    if not needle:
        return None
    try:
        firms = Firm.query.order_by(Firm.id).all()
    except SQLAlchemyError as exc:
        raise CatalogUnavailable(str(exc)) from exc
    for firm in firms:
        if (firm.name or '').strip().lower() == needle:
            return firm
    for firm in firms:
        candidate = (firm.name or '').strip().lower()
        if candidate and (needle in candidate or candidate in needle):
            return firm
    return None


def _playable_game(firm_name: str, game_name: str) -> dict:
    firm = get_firm_by_name(firm_name)
    if firm is None:
        raise CatalogEmpty(f'firm not found: {firm_name}')
    game = next((g for g in firm.game_list() if g.get('name') == game_name), None)
    if game is None:
        raise CatalogEmpty(f'{game_name} is not configured for {firm.name}')
    if normalize_status(game.get('status')) != ACTIVE:
        raise CatalogEmpty(f'{game_name} is not active for {firm.name}')
    return game


def _parse_quiz(raw: dict) -> Optional[QuizChallenge]:
    options = raw.get('options') or []
    if len(options) != 4 or not options[0]:
        return None
    try:
        correct = int(raw.get('correctAnswer') or 0)
    except (TypeError, ValueError):
        correct = 0
    if not 0 <= correct < len(options):
        # The zone stays clickable; only the broken question is dropped
        logger.warning('quiz on zone %s ignored: correctAnswer %r out of range', raw.get('id'), raw.get('correctAnswer'))
        return None
    return QuizChallenge(tuple(str(o) for o in options), correct)


def _parse_image(asset, idx: int) -> Optional[ImageTarget]:
    if isinstance(asset, str):
        return ImageTarget(id=f'asset-{idx}', url=asset) if asset else None
    if not isinstance(asset, dict) or not asset.get('url'):
        logger.warning('asset without url skipped: %r', asset)
        return None
    asset_id = str(asset.get('id') or f'asset-{idx}')
    zones = []
    for coord_idx, raw in enumerate(asset.get('coordinates') or []):
        try:
            zones.append(HazardZone(
                id=str(raw.get('id') or f'{asset_id}-{coord_idx}'),
                x=float(raw['x']),
                y=float(raw['y']),
                width=float(raw['width']),
                height=float(raw['height']),
                quiz=_parse_quiz(raw),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning('zone %s of %s skipped: %s', coord_idx, asset_id, exc)
    return ImageTarget(id=asset_id, url=asset['url'], zones=tuple(zones))


def load_hazard_images(firm_name: str) -> List[ImageTarget]:
    game = _playable_game(firm_name, HAZARD_GAME_NAME)
    images = [img for img in (_parse_image(a, i) for i, a in enumerate(game.get('assets') or [])) if img]
    if not images:
        raise CatalogEmpty(f'{HAZARD_GAME_NAME} has no images')
    return images


def load_match_pairs(firm_name: str) -> List[Pair]:
    game = _playable_game(firm_name, MATCH_GAME_NAME)
    pairs = [
        Pair(symbol=str(p.get('symbol') or ''), meaning=str(p.get('meaning') or ''))
        for p in (game.get('pairs') or []) if isinstance(p, dict)
    ]
    if not pairs:
        raise CatalogEmpty(f'{MATCH_GAME_NAME} has no pairs')
    return pairs


def active_games(firm_name: str) -> List[dict]:
    firm = get_firm_by_name(firm_name)
    if firm is None:
        raise CatalogEmpty(f'firm not found: {firm_name}')
    listed = []
    seen = set()
    for game in firm.game_list():
        name = game.get('name')
        if name not in GAME_DESCRIPTIONS or name in seen:
            continue
        if normalize_status(game.get('status')) != ACTIVE:
            continue
        seen.add(name)
        listed.append({
            'name': name,
            'slug': slug_for(name),
            'description': GAME_DESCRIPTIONS[name],
        })
    return listed
