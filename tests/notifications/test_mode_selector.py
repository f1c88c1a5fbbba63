"""
Tests for the accurate/inaccurate mode selector.

Covers:
- Threshold boundary (200 accurate, 201 inaccurate)
- Switching back when the count drops
- Recomputing with an unchanged count writes nothing
"""

from unittest.mock import patch

import pytest

from notifications.mode_selector import ModeSelector
from storage.models.subscriptions import AlertMode
from storage.repositories.subscriptions import MapperAlertRepository


@pytest.fixture
def alert_id(database, clock):
    with database.transaction() as session:
        return MapperAlertRepository(session, clock).create("alice", "mapper1", "a@x.test").id


def _apply(database, selector, alert_id, map_count):
    with database.transaction() as session:
        alert = MapperAlertRepository(session).get(alert_id)
        return selector.apply(session, alert, map_count)


def _load(database, alert_id):
    with database.transaction() as session:
        return MapperAlertRepository(session).get(alert_id)


class TestModeSelector:
    """Per-run decision persisted on the alert."""

    def test_decide_boundary(self):
        selector = ModeSelector(threshold=200)

        assert selector.decide(0) == AlertMode.ACCURATE
        assert selector.decide(200) == AlertMode.ACCURATE
        assert selector.decide(201) == AlertMode.INACCURATE

    def test_persists_and_switches_both_ways(self, database, alert_id):
        selector = ModeSelector(threshold=200)

        assert _apply(database, selector, alert_id, 200) == AlertMode.ACCURATE
        stored = _load(database, alert_id)
        assert (stored.alert_mode, stored.tracked_map_count) == (AlertMode.ACCURATE, 200)

        assert _apply(database, selector, alert_id, 201) == AlertMode.INACCURATE
        stored = _load(database, alert_id)
        assert (stored.alert_mode, stored.tracked_map_count) == (AlertMode.INACCURATE, 201)

        assert _apply(database, selector, alert_id, 150) == AlertMode.ACCURATE
        assert _load(database, alert_id).alert_mode == AlertMode.ACCURATE

    def test_unchanged_count_is_idempotent(self, database, alert_id):
        selector = ModeSelector(threshold=200)
        _apply(database, selector, alert_id, 250)

        with patch.object(MapperAlertRepository, "update_mode") as update_mode:
            mode = _apply(database, selector, alert_id, 250)

        assert mode == AlertMode.INACCURATE
        update_mode.assert_not_called()
