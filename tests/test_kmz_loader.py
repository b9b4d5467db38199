from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from helpers import build_kml, placemark_xml
from rebuild_helper.core import NotFoundError, ParseError, ValidationError
from rebuild_helper.services import KmzLoader
from rebuild_helper.services.kmz_loader import parse_coordinates


def test_points_come_from_home_folder_only(write_kmz):
    kml = build_kml(
        [placemark_xml("12", "112.70,-7.20,0"), placemark_xml("007A", "112.71,-7.21")],
        extra="<Folder><name>POLE</name>" + placemark_xml("99") + "</Folder>",
    )

    document = KmzLoader().load(write_kmz(kml))

    assert [(p.name, p.key) for p in document.points] == [("12", "12"), ("007A", "7A")]
    assert document.points[0].latitude == pytest.approx(-7.20)
    assert document.points[0].longitude == pytest.approx(112.70)
    assert len(document.placemarks) == 3
    assert document.home_folder is not None
    assert document.placemark(document.points[1]).find("./{*}name").text == "007A"


def test_whole_document_is_used_without_home_folder(write_kmz):
    kml = build_kml([placemark_xml("1"), placemark_xml("2")], with_home=False)

    document = KmzLoader().load(write_kmz(kml))

    assert [p.name for p in document.points] == ["1", "2"]
    assert document.home_folder is None


def test_folder_lookup_ignores_case(write_kmz):
    kml = build_kml(with_home=False, extra=(
        "<Folder><name> hp </name><Folder><name>Home</name>" + placemark_xml("5") + "</Folder></Folder>"
        + placemark_xml("6")
    ))

    document = KmzLoader().load(write_kmz(kml))

    assert [p.name for p in document.points] == ["5"]


def test_bad_coordinates_skip_only_that_placemark(write_kmz):
    kml = build_kml(
        [
            placemark_xml("1", "abc,def,0"),
            placemark_xml("2", "112.7"),
            placemark_xml("3", None),
            placemark_xml("4", "nan,-7.2"),
            placemark_xml("5", "112.8,-7.3,10"),
        ]
    )

    document = KmzLoader().load(write_kmz(kml))

    assert [p.name for p in document.points] == ["5"]
    assert document.points[0].node_index == 4


def test_previous_export_folder_is_not_treated_as_points(write_kmz):
    kml = build_kml(
        [placemark_xml("1")],
        with_home=False,
        extra="<Folder><name>REBUILD_HELPER</name><Folder><name>MATCHED</name>"
        + placemark_xml("1")
        + "</Folder></Folder>",
    )

    document = KmzLoader().load(write_kmz(kml))

    assert len(document.points) == 1
    assert document.points[0].node_index == 0


def test_inner_kml_name_is_remembered(write_kmz):
    document = KmzLoader().load(write_kmz(build_kml([placemark_xml("1")]), inner_name="files/ABD.KML"))
    assert document.kml_name == "files/ABD.KML"
    assert document.namespace == "http://www.opengis.net/kml/2.2"
    assert document.namespaces["gx"] == "http://www.google.com/kml/ext/2.2"


def test_archive_without_kml_is_not_found(tmp_path: Path):
    path = tmp_path / "empty.kmz"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("images/icon.png", b"\x89PNG")

    with pytest.raises(NotFoundError):
        KmzLoader().load(path)


def test_invalid_archive_is_a_parse_error(tmp_path: Path):
    path = tmp_path / "broken.kmz"
    path.write_bytes(b"not a zip")

    with pytest.raises(ParseError):
        KmzLoader().load(path)


def test_malformed_kml_is_a_parse_error(write_kmz):
    with pytest.raises(ParseError):
        KmzLoader().load(write_kmz("<kml><Document><Placemark></kml>"))


def test_missing_upload_is_a_validation_error(tmp_path: Path):
    with pytest.raises(ValidationError):
        KmzLoader().load(None)
    with pytest.raises(ValidationError):
        KmzLoader().load(tmp_path / "nope.kmz")


def test_parse_coordinates():
    assert parse_coordinates(" 112.5 , -7.5 , 0 ") == (112.5, -7.5)
    assert parse_coordinates("112.5") is None
    assert parse_coordinates("inf,1") is None
    assert parse_coordinates("") is None
