import itertools

import pytest

from safety_games.services.games.errors import CatalogEmpty
from safety_games.services.games.hazard import (
    HazardSession,
    HazardZone,
    ImageTarget,
    QuizChallenge,
    RenderedBox,
)

QUIZ = QuizChallenge(('Emniyet kemeri eksik', 'Baret eksik', 'Eldiven eksik', 'Sorun yok'), 0)


def keep_order(items):
    pass


def four_zone_image(image_id='img-1', quiz_on=None):
    zones = []
    for i in range(4):
        zid = f'{image_id}-z{i}'
        zones.append(HazardZone(zid, i * 20, 0, 10, 10, QUIZ if zid == quiz_on else None))
    return ImageTarget(image_id, f'https://example.com/{image_id}.jpg', tuple(zones))


def one_zone_image(image_id):
    return ImageTarget(image_id, f'https://example.com/{image_id}.jpg',
                       (HazardZone(f'{image_id}-z0', 0, 0, 10, 10),))


def make_session(images, **kwargs):
    terminal_calls = []
    kwargs.setdefault('duration', 60)
    kwargs.setdefault('shuffle', keep_order)
    session = HazardSession(images, on_terminal=terminal_calls.append, **kwargs)
    return session, terminal_calls


def find_all(session, count=4):
    for i in range(count):
        session.click(i * 20 + 5, 5)


def run_out(session):
    for _ in range(session.duration):
        session.tick()


def test_perfect_image_scores_100():
    session, calls = make_session([four_zone_image()])
    session.image_loaded()
    find_all(session)
    assert session.current_state.status == 'succeeded'
    assert session.current_state.score == 100
    assert session.status == 'complete'
    assert session.score == 100
    assert calls == [session]


def test_misses_lower_the_score():
    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    for _ in range(4):
        assert session.click(90, 90) is None
    find_all(session)
    assert session.current_state.click_count == 8
    assert session.current_state.score == 50


def test_timeout_freezes_image_score_at_zero():
    session, calls = make_session([four_zone_image()])
    session.image_loaded()
    find_all(session, count=2)
    run_out(session)
    state = session.current_state
    assert state.status == 'timed_out'
    assert state.score == 0
    assert len(state.found) == 2
    assert session.time_up_notice
    assert session.score == 0
    assert len(calls) == 1


def test_one_timeout_zeroes_the_session():
    session, calls = make_session([one_zone_image('a'), one_zone_image('b')])
    session.image_loaded()
    session.click(5, 5)
    assert session.current_state.score == 100
    assert session.status == 'in_progress'

    session.next_image()
    assert session.index == 1
    assert session.current_state.status == 'loading'
    session.image_loaded()
    run_out(session)

    assert [s.score for s in session.states] == [100, 0]
    assert session.status == 'complete'
    assert session.score == 0
    assert len(calls) == 1


def test_acknowledging_timeout_moves_to_next_image():
    session, _ = make_session([one_zone_image('a'), one_zone_image('b')])
    session.image_loaded()
    session.click(50, 50)
    run_out(session)
    assert session.time_up_notice
    assert session.click(5, 5) is None

    session.acknowledge_timeout()
    assert not session.time_up_notice
    assert session.index == 1
    state = session.current_state
    assert state.click_count == 0
    assert state.remaining == 60
    session.image_loaded()
    assert session.clock.remaining == 60
    assert session.click(5, 5) == 'b-z0'


def test_clicks_before_load_are_not_counted():
    session, _ = make_session([four_zone_image()])
    assert session.click(5, 5) is None
    assert session.current_state.click_count == 0
    assert session.tick() is False


def test_found_zone_cannot_be_hit_twice():
    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    assert session.click(5, 5) == 'img-1-z0'
    assert session.click(5, 5) is None
    assert session.current_state.click_count == 2


def test_overlapping_zones_first_in_list_wins():
    image = ImageTarget('img', 'u', (
        HazardZone('outer', 0, 0, 50, 50),
        HazardZone('inner', 10, 10, 10, 10),
    ))
    session, _ = make_session([image])
    session.image_loaded()
    assert session.click(15, 15) == 'outer'
    assert session.click(15, 15) == 'inner'


def test_zone_edges_are_inclusive():
    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    assert session.click(10, 10) == 'img-1-z0'


def test_pointer_is_mapped_through_rendered_box():
    box = RenderedBox(left=100, top=50, width=400, height=200)
    assert box.to_percent(140, 70) == (10.0, 10.0)

    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    # 20-30% across a 400px wide box starts at x=180
    assert session.click_pointer(200, 60, box) == 'img-1-z1'


def test_quiz_correct_answer_marks_zone_found():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    assert session.click(5, 5) == 'img-1-z0'
    assert session.active_quiz is not None
    assert 'img-1-z0' not in session.current_state.found

    assert session.answer_quiz(0) is True
    assert session.pending_resolution == {'type': 'resolve_quiz', 'token': session.active_quiz.token}
    assert session.resolve_quiz(session.active_quiz.token) is True
    assert session.active_quiz is None
    assert 'img-1-z0' in session.current_state.found


def test_quiz_wrong_answer_leaves_zone_retryable():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    assert session.answer_quiz(2) is False
    session.resolve_quiz()
    assert 'img-1-z0' not in session.current_state.found

    assert session.click(5, 5) == 'img-1-z0'
    assert session.active_quiz is not None
    assert session.current_state.click_count == 2


def test_answer_is_locked_after_first_choice():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    assert session.answer_quiz(1) is False
    assert session.answer_quiz(0) is None
    session.resolve_quiz()
    assert 'img-1-z0' not in session.current_state.found


@pytest.mark.parametrize('perm', list(itertools.permutations(range(4))))
def test_quiz_correctness_survives_any_option_order(perm):
    def fixed(items):
        items[:] = [items[i] for i in perm]

    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')], shuffle=fixed)
    session.image_loaded()
    session.click(5, 5)
    options = session.snapshot()['quiz']['options']
    assert sorted(options) == sorted(QUIZ.options)
    slot = options.index(QUIZ.options[QUIZ.correct_index])
    assert session.answer_quiz(slot) is True
    session.resolve_quiz()
    assert 'img-1-z0' in session.current_state.found


def test_clicks_are_refused_while_quiz_is_open():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    assert session.click(25, 5) is None
    assert session.current_state.click_count == 1
    assert 'img-1-z1' not in session.current_state.found


def test_stale_resolution_token_is_ignored():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    token = session.active_quiz.token
    session.answer_quiz(0)
    assert session.resolve_quiz(token + 1) is False
    assert session.active_quiz is not None
    assert session.resolve_quiz(token) is True


def test_dismissing_unanswered_quiz_changes_nothing():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    session.dismiss_quiz()
    assert session.active_quiz is None
    assert session.current_state.found == set()
    assert session.click(25, 5) == 'img-1-z1'


def test_clock_keeps_running_during_quiz_by_default():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    session.tick()
    session.tick()
    assert session.current_state.remaining == 58


def test_clock_can_pause_during_quiz():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')], pause_clock_during_quiz=True)
    session.image_loaded()
    session.click(5, 5)
    for _ in range(5):
        session.tick()
    assert session.current_state.remaining == 60
    session.dismiss_quiz()
    session.tick()
    assert session.current_state.remaining == 59


def test_timeout_discards_pending_quiz():
    session, _ = make_session([four_zone_image(quiz_on='img-1-z0')])
    session.image_loaded()
    session.click(5, 5)
    token = session.active_quiz.token
    session.answer_quiz(0)
    run_out(session)
    assert session.active_quiz is None
    assert session.resolve_quiz(token) is False
    assert session.current_state.found == set()
    assert session.current_state.score == 0


def test_stale_clock_generation_is_ignored():
    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    old = session.clock.generation
    session.clock.reset()
    assert session.tick(old) is False
    assert session.current_state.remaining == 60
    assert session.tick(session.clock.generation) is False
    assert session.current_state.remaining == 59


def test_asset_failure_is_recoverable():
    session, _ = make_session([four_zone_image()])
    err = session.image_failed('404')
    assert err is not None
    assert session.current_state.asset_error == '404'
    assert session.current_state.status == 'loading'
    session.retry_image()
    assert session.current_state.asset_error is None
    session.image_loaded()
    assert session.current_state.status == 'active'


def test_image_without_zones_succeeds_on_load():
    session, calls = make_session([ImageTarget('plain', 'u')])
    session.image_loaded()
    assert session.current_state.status == 'succeeded'
    assert session.score == 100
    assert len(calls) == 1


def test_terminal_callback_fires_once():
    session, calls = make_session([four_zone_image()])
    session.image_loaded()
    find_all(session)
    session.tick()
    session.acknowledge_timeout()
    session.next_image()
    assert len(calls) == 1


def test_handle_dispatches_events():
    session, _ = make_session([four_zone_image()])
    session.handle({'type': 'image_loaded'})
    assert session.handle({'type': 'click', 'x': 5, 'y': 5}) == 'img-1-z0'
    assert session.handle({'type': 'click', 'client_x': 25, 'client_y': 5,
                           'left': 0, 'top': 0, 'width': 100, 'height': 100}) == 'img-1-z1'
    session.handle({'type': 'tick'})
    assert session.snapshot()['image']['time_remaining'] == 59
    with pytest.raises(ValueError):
        session.handle({'type': 'explode'})


def test_snapshot_hides_unfound_zones():
    session, _ = make_session([four_zone_image()])
    session.image_loaded()
    session.click(5, 5)
    image = session.snapshot()['image']
    assert [z['id'] for z in image['found_zones']] == ['img-1-z0']
    assert image['zone_count'] == 4


def test_result_details():
    session, _ = make_session([one_zone_image('a'), one_zone_image('b')])
    session.image_loaded()
    session.click(5, 5)
    session.next_image()
    session.image_loaded()
    session.click(50, 50)
    session.click(5, 5)
    result = session.result()
    assert result['score'] == 75
    assert result['details']['image_scores'] == {0: 100, 1: 50}
    assert result['details']['click_counts'] == {0: 1, 1: 2}
    assert result['details']['completed_images'] == [0, 1]
    assert result['details']['has_failed'] is False


def test_no_images_is_catalog_empty():
    with pytest.raises(CatalogEmpty):
        HazardSession([])
