import copy
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from brawltrack.api_client import BrawlApiError
from brawltrack.compare import (
    SIDE_EVEN,
    SIDE_LEFT,
    SIDE_RIGHT,
    PlayerComparator,
    face_to_face,
    shared_clubs,
)
from tests.helpers import FakeApi, create_test_db, remove_test_db, sample_battlelog, sample_profile

LEFT = '#P0LY8J2Q'
RIGHT = '#Q2GCUV9L'


def _right_battles():
    mirrored = copy.deepcopy(sample_battlelog()[0])
    mirrored['battle']['result'] = 'defeat'
    return [mirrored, {'battleTime': '20260228T120000.000Z', 'event': {'mode': 'heist', 'map': 'Safe Zone'},
                       'battle': {'mode': 'heist', 'result': 'victory'}}]


def _side(name, tag, **values):
    summary = {'name': name, 'tag': tag, 'ranked_elo': 0, 'ranked_winrate_25': 0, 'trophies': 0, 'highest_trophies': 0}
    summary.update(values)
    return summary


def test_face_to_face_matches_shared_battles():
    tally = face_to_face(sample_battlelog(), _right_battles())
    assert tally == {'matches': 1, 'left_wins': 1, 'right_wins': 0, 'draws': 0}
    assert face_to_face([], _right_battles())['matches'] == 0


def test_shared_clubs_from_history_and_current_club():
    history = [
        {'player_tag': LEFT, 'club_name': 'Orion'},
        {'player_tag': LEFT, 'club_name': 'Vertex'},
        {'player_tag': RIGHT, 'club_name': 'Vertex'},
        {'player_tag': RIGHT, 'club_name': ''},
    ]
    left = sample_profile()
    right = sample_profile(tag=RIGHT, club={'tag': '#2L8Q9JVC', 'name': 'Orion'})
    assert shared_clubs(history, left, right) == ['Vertex', 'Orion']
    assert shared_clubs([], left, sample_profile(tag=RIGHT, club={})) == []


def test_favorite_decision_rules():
    comparator = PlayerComparator()
    left = _side('Nova', LEFT, ranked_elo=9000, ranked_winrate_25=60, trophies=41000)
    right = _side('Raven', RIGHT, ranked_elo=8000, ranked_winrate_25=50, trophies=45000, highest_trophies=46000)

    decision = comparator.favorite_decision(left, right, [])
    assert decision['side'] == SIDE_LEFT
    assert decision['tag'] == LEFT
    assert decision['reasons'] == [
        'Nova has a clear ranked advantage.',
        'Nova has the better recent ranked winrate.',
    ]
    assert decision['similar_stats'] is False

    decision = comparator.favorite_decision(_side('Nova', LEFT, trophies=1000), _side('Raven', RIGHT, trophies=2000), [])
    assert decision['side'] == SIDE_RIGHT


def test_favorite_decision_even_and_similar():
    comparator = PlayerComparator()
    left = _side('Nova', LEFT, ranked_elo=8100, ranked_winrate_25=55)
    right = _side('Raven', RIGHT, ranked_elo=8000, ranked_winrate_25=54)

    decision = comparator.favorite_decision(left, right, ['Orion'])
    assert decision['side'] == SIDE_EVEN
    assert decision['tag'] is None
    assert decision['similar_stats'] is True
    assert 'Shared club history: Orion.' in decision['reasons']
    assert decision['reasons'][-1] == 'Very similar level over the recent sample.'


def test_compare_tags_end_to_end():
    api = FakeApi(
        players={
            LEFT: sample_profile(rankedElo=9000),
            RIGHT: sample_profile(tag=RIGHT, name='Raven', rankedElo=8200, trophies=30000),
        },
        battlelogs={LEFT: sample_battlelog(), RIGHT: _right_battles()},
    )
    result = PlayerComparator(api).compare_tags('p0ly8j2q', 'q2gcuv9l')

    assert result['left']['ranked_elo'] == 9000
    assert result['left']['ranked_label'] == 'Masters I'
    assert result['left']['top_ranked_map'] == 'Hard Rock Mine'
    assert result['right']['ranked_winrate_25'] == 0.0
    comparison = result['comparison']
    assert comparison['favorite']['side'] == SIDE_LEFT
    assert comparison['ranked_elo_diff'] == 800
    assert comparison['trophy_diff'] == 11250
    assert comparison['shared_clubs'] == ['Orion']
    assert comparison['face_to_face']['left_wins'] == 1


def test_compare_tags_reads_club_history():
    db, path = create_test_db()
    try:
        db.upsert_daily_history(sample_profile(club={'name': 'Vertex'}), 1.0, 50.0, snapshot_date='2026-01-01')
        db.upsert_daily_history(sample_profile(tag=RIGHT, club={'name': 'Vertex'}), 1.0, 50.0, snapshot_date='2026-01-02')
        api = FakeApi(
            players={LEFT: sample_profile(), RIGHT: sample_profile(tag=RIGHT, club={})},
            battlelogs={LEFT: [], RIGHT: []},
        )
        result = PlayerComparator(api, db).compare_tags(LEFT, RIGHT)
        assert result['comparison']['shared_clubs'] == ['Vertex']
    finally:
        remove_test_db(db, path)


def test_compare_tags_errors():
    with pytest.raises(RuntimeError):
        PlayerComparator().compare_tags(LEFT, RIGHT)

    api = FakeApi(players={LEFT: sample_profile()})
    with pytest.raises(BrawlApiError):
        PlayerComparator(api).compare_tags(LEFT, RIGHT)
