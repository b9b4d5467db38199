from __future__ import annotations

import threading
from pathlib import Path

import pytest

from helpers import build_kml, placemark_xml, read_kml
from rebuild_helper.core import MatchStatus, ValidationError
from rebuild_helper.pipelines import ReconciliationSession

ROSTER = [
    {"ST_NUM": "1", "ST_NAME": "Jalan X", "RT": "001"},
    {"ST_NUM": "2", "ST_NAME": "Jalan X"},
    {"ST_NUM": "4", "ST_NAME": "Jalan X"},
    {"ST_NUM": "3A", "ST_NAME": "Jalan Y"},
    {"ST_NUM": "6", "ST_NAME": "Jalan X"},
    {"ST_NUM": "5B", "ST_NAME": "Jalan X"},
    {"ST_NUM": "7", "ST_NAME": "Jalan Y"},
]

HOME_POINTS = [
    placemark_xml("1", "112.70,-7.20,0"),
    placemark_xml("2", "112.71,-7.21,0"),
    placemark_xml("2", "112.72,-7.22,0"),
    placemark_xml("3", "112.73,-7.23,0"),
    placemark_xml("5", "112.75,-7.25,0"),
]


@pytest.fixture()
def inputs(write_roster, write_kmz) -> tuple[Path, Path]:
    return write_roster(ROSTER), write_kmz(build_kml(HOME_POINTS))


@pytest.fixture()
def session(inputs) -> ReconciliationSession:
    session = ReconciliationSession.default(export_strategy="append")
    status = session.load(*inputs)
    assert status.ok, status.message
    return session


def statuses(session: ReconciliationSession) -> list[MatchStatus]:
    return [result.status for result in session.matches]


def test_load_classifies_every_row(session):
    assert statuses(session) == [
        MatchStatus.MATCHED,
        MatchStatus.REVIEW,
        MatchStatus.MISSING,
        MatchStatus.REVIEW_ADD,
        MatchStatus.MISSING,
        MatchStatus.REVIEW_ADD,
        MatchStatus.MISSING,
    ]
    assert session.summary() == {
        "MATCHED": 1,
        "REVIEW": 1,
        "REVIEW_ADD": 2,
        "MISSING": 3,
        "ADDED": 0,
        "total": 7,
    }
    assert "MISSING: 3" in session.status.message
    assert session.selected == 2
    assert session.streets() == ["Jalan X", "Jalan Y"]


def test_failed_reload_leaves_session_empty(session, write_roster, inputs):
    session.start_bulk("Jalan X")
    bad_roster = write_roster([{"HOUSE": "1"}], fieldnames=("HOUSE",), filename="bad.csv")

    status = session.load(bad_roster, inputs[1])

    assert not status.ok
    assert isinstance(status.error, ValidationError)
    assert "ST_NUM" in status.message
    assert session.matches == []
    assert session.document is None
    assert not session.bulk.active
    assert session.selected is None


def test_load_requires_both_files(inputs):
    session = ReconciliationSession.default()
    assert not session.load(None, inputs[1]).ok
    assert not session.load(inputs[0], None).ok


def test_bulk_placement_advances_and_undo_rewinds(session):
    status = session.start_bulk("Jalan X")
    assert status.ok
    assert session.bulk.queue == (2, 4, 5)
    assert session.bulk_label() == "Jalan X (1/3)"
    assert session.selection_label() == "4 • Jalan X"

    assert session.place_at(-7.30, 112.80).ok
    assert session.matches[2].status is MatchStatus.ADDED
    assert session.bulk.cursor == 1
    assert session.selected == 4
    assert session.focus(2) == (-7.30, 112.80)

    assert session.undo().ok
    assert session.matches[2].status is MatchStatus.MISSING
    assert session.matches[2].added is None
    assert session.bulk.cursor == 0
    assert session.selected == 2
    assert 2 not in session.added_points


def test_undo_restores_review_add_when_a_point_was_linked(session):
    session.start_bulk("Jalan X")
    session.skip()
    session.skip()

    session.place_at(-7.26, 112.76)
    assert session.matches[5].status is MatchStatus.ADDED

    session.undo()
    assert session.matches[5].status is MatchStatus.REVIEW_ADD


def test_undo_of_a_placement_outside_the_queue_keeps_the_cursor(session):
    session.start_bulk("Jalan X")
    session.place_at(-7.30, 112.80)
    assert session.bulk.cursor == 1

    session.place_at(-7.33, 112.83, row_index=3)
    assert session.bulk.cursor == 1

    session.undo()
    assert session.matches[3].status is MatchStatus.REVIEW_ADD
    assert session.matches[2].status is MatchStatus.ADDED
    assert session.bulk.cursor == 1
    assert session.selected == 4

    session.undo()
    assert session.matches[2].status is MatchStatus.MISSING
    assert session.bulk.cursor == 0
    assert session.selected == 2


def test_undo_does_not_rewind_a_restarted_queue(session):
    session.start_bulk("Jalan X")
    session.place_at(-7.30, 112.80)
    session.stop_bulk()
    session.start_bulk("Jalan X")
    assert session.bulk.queue == (4, 5)

    session.undo()

    assert session.matches[2].status is MatchStatus.MISSING
    assert session.bulk.cursor == 0
    assert session.bulk.current_target() == 4


def test_bulk_finishes_after_last_placement(session):
    session.start_bulk("Jalan X")
    session.place_at(-7.30, 112.80)
    session.place_at(-7.31, 112.81)
    status = session.place_at(-7.32, 112.82)

    assert status.ok
    assert "Bulk finished" in status.message
    assert not session.bulk.active
    assert session.bulk_label() == "off"
    assert session.summary()["ADDED"] == 3


def test_skipping_past_the_end_stops_bulk(session):
    session.start_bulk("Jalan X")
    session.skip()
    session.skip()
    status = session.skip()

    assert status.message == "Bulk finished (after skip)."
    assert not session.bulk.active
    assert session.summary()["ADDED"] == 0
    assert not session.skip().ok


def test_bulk_start_problems_are_reported(session):
    empty = session.start_bulk("")
    assert not empty.ok
    assert isinstance(empty.error, ValidationError)

    nothing = session.start_bulk("Jalan Kosong")
    assert not nothing.ok
    assert nothing.error is None
    assert not session.bulk.active


def test_bulk_start_before_load_is_reported():
    status = ReconciliationSession.default().start_bulk("Jalan X")
    assert not status.ok
    assert isinstance(status.error, ValidationError)


def test_placement_is_refused_for_matched_rows(session):
    status = session.place_at(-7.3, 112.8, row_index=0)

    assert not status.ok
    assert session.matches[0].status is MatchStatus.MATCHED
    assert session.history == []

    session.select(1)
    assert session.target_row() is None
    assert not session.place_at(-7.3, 112.8).ok


def test_invalid_coordinates_are_refused(session):
    assert not session.place_at("north", 112.8).ok
    assert not session.place_at(-97.0, 112.8).ok
    assert session.matches[2].status is MatchStatus.MISSING


def test_replacing_a_point_and_undoing_step_by_step(session):
    session.select(6)
    session.place_at(-7.40, 112.90)
    session.place_at(-7.41, 112.91, row_index=6)

    assert session.added_points[6].latitude == -7.41
    assert len(session.added_points) == 1

    session.undo()
    assert session.matches[6].status is MatchStatus.ADDED
    assert session.added_points[6].latitude == -7.40

    session.undo()
    assert session.matches[6].status is MatchStatus.MISSING
    assert session.added_points == {}

    status = session.undo()
    assert not status.ok
    assert status.message == "Nothing to undo."


def test_select_rejects_unknown_rows(session):
    assert not session.select(99).ok
    assert not session.select("abc").ok
    assert session.select("3").ok
    assert session.selected == 3


def test_filter_rows(session):
    def indices(**kwargs):
        return [result.row.index for result in session.filter_rows(**kwargs)]

    assert indices() == [2, 3, 4, 5, 6]
    assert indices(street="Jalan Y") == [3, 6]
    assert indices(query="5b") == [5]
    assert indices(view="matched") == [0, 1]
    assert indices(view="all", query="jalan y") == [3, 6]
    with pytest.raises(ValidationError):
        session.filter_rows(view="everything")


def test_focus_prefers_the_linked_point(session):
    assert session.focus(0) == (-7.20, 112.70)
    assert session.focus(3) == (-7.23, 112.73)
    assert session.focus(2) is None


def test_export_writes_kmz_with_original_inner_name(session, tmp_path: Path):
    session.select(6)
    session.place_at(-7.40, 112.90)
    output = tmp_path / "out" / "ABD_KMZ_UPDATED.kmz"

    status = session.export(output)
    first = read_kml(output)
    assert session.export(output).ok
    second = read_kml(output)

    assert status.ok
    assert status.message == "Export done: ABD_KMZ_UPDATED.kmz"
    assert first == second
    assert first.count("<name>REBUILD_HELPER</name>") == 1
    assert "ADDED_BY_TOOL" in first
    assert session.export_path == output


def test_enrich_export(inputs, tmp_path: Path):
    session = ReconciliationSession.default(export_strategy="enrich")
    session.load(*inputs)
    output = tmp_path / "enriched.kmz"

    assert session.export(output).ok
    kml = read_kml(output)

    assert "REBUILD_HELPER" not in kml
    assert kml.count("ABD_EXISTING") == 4


def test_switching_export_strategy_is_refused(session, inputs, tmp_path: Path):
    session.select(6)
    session.place_at(-7.40, 112.90)
    output = tmp_path / "out.kmz"

    assert session.export(output, strategy="append").ok
    status = session.export(output, strategy="enrich")

    assert not status.ok
    assert isinstance(status.error, ValidationError)
    kml = read_kml(output)
    assert kml.count("ADDED_BY_TOOL") == 1
    assert "ABD_EXISTING" in kml

    session.load(*inputs)
    assert session.export(output, strategy="enrich").ok


def test_export_before_load_is_reported(tmp_path: Path):
    session = ReconciliationSession.default()
    status = session.export(tmp_path / "x.kmz")

    assert not status.ok
    assert isinstance(status.error, ValidationError)
    assert not (tmp_path / "x.kmz").exists()


def test_overlapping_operations_are_refused(session, inputs):
    session.busy = "export"

    status = session.load(*inputs)

    assert not status.ok
    assert "still running" in status.message
    assert session.matches


def test_snapshot_is_json_ready(session):
    snapshot = session.snapshot()

    assert snapshot["loaded"] is True
    assert snapshot["kml_name"] == "doc.kml"
    assert snapshot["target"] == 2
    assert snapshot["bulk"]["active"] is False
    assert snapshot["status"]["ok"] is True


class SlowIngestor:
    """Blocks inside ``load`` until released so a second command can overlap it."""

    def __init__(self, inner):
        self.inner = inner
        self.started = threading.Event()
        self.release = threading.Event()

    def load(self, path):
        self.started.set()
        self.release.wait(5)
        return self.inner.load(path)


def test_load_from_another_thread_is_refused_while_one_runs(inputs):
    session = ReconciliationSession.default(export_strategy="append")
    slow = SlowIngestor(session.ingestor)
    session.ingestor = slow
    worker = threading.Thread(target=session.load, args=inputs)
    worker.start()
    assert slow.started.wait(5)

    status = session.load(*inputs)
    slow.release.set()
    worker.join(5)

    assert not status.ok
    assert "still running" in status.message
    assert session.busy is None
    assert session.summary()["total"] == 7
