import os

import runtimes
from conftest import make_runtime
from runtimes import LocateOutcome


def _runtimes(tmp_path, *version_list):
    paths = []
    for i, version in enumerate(version_list):
        paths.append(make_runtime(tmp_path / f"r{i}" / "Webwrap.app", version))
    return paths


def test_release_app_ignoring_only_newer_version_finds_latest_only(
        tmp_path, make_app, no_default_runtimes):
    app = make_app(version="2.1.0", engine="external|com.microsoft.edgemac")
    found = _runtimes(tmp_path, "2.0.0", "2.2.0", "2.3.0b1")

    result = runtimes.locate(app, ignore_versions=["2.2.0"], search=lambda: found)

    assert result.outcome == LocateOutcome.LATEST_ONLY
    assert result.outcome == 4
    assert result.current is None
    assert result.latest.version == "2.2.0"
    assert result.update is None
    assert not result.cannot_create


def test_internal_engine_without_current_offers_latest(
        tmp_path, make_app, no_default_runtimes):
    app = make_app(version="2.1.0")
    found = _runtimes(tmp_path, "2.2.0")
    result = runtimes.locate(app, ignore_versions=["2.2.0"], search=lambda: found)
    assert result.cannot_create
    assert result.update.version == "2.2.0"
    assert result.outcome == LocateOutcome.LATEST_UPDATE


def test_fully_resolved_picks_highest_update(tmp_path, make_app, no_default_runtimes):
    app = make_app(version="2.1.0")
    found = _runtimes(tmp_path, "2.1.0", "2.2.0", "2.4.0", "2.3.0")
    result = runtimes.locate(app, search=lambda: found)
    assert result.outcome == LocateOutcome.RESOLVED
    assert result.current.path == os.path.realpath(found[0])
    assert result.update.version == "2.4.0"
    assert result.latest.version == "2.4.0"


def test_beta_app_accepts_beta_runtimes(tmp_path, make_app, no_default_runtimes):
    app = make_app(version="2.1.0b2")
    found = _runtimes(tmp_path, "2.1.0b2", "2.1.1b1")
    result = runtimes.locate(app, search=lambda: found)
    assert result.current.version == "2.1.0b2"
    assert result.latest.version == "2.1.1b1"


def test_nothing_found(make_app, no_default_runtimes):
    result = runtimes.locate(make_app(), search=lambda: [])
    assert result.outcome == LocateOutcome.NOTHING
    assert result.cannot_create


def test_unreadable_descriptor_is_not_an_instance(tmp_path, make_app, no_default_runtimes):
    bogus = tmp_path / "bogus" / "Webwrap.app"
    bogus.mkdir(parents=True)
    result = runtimes.locate(make_app(), search=lambda: [str(bogus)])
    assert result.latest is None


def test_ignore_list_pruned_of_old_versions(make_app, no_default_runtimes):
    app = make_app(version="2.3.0")
    result = runtimes.locate(app, ignore_versions=["2.2.0", "2.3.0", "2.4.0"],
                             search=lambda: [])
    assert result.ignore_versions == ["2.4.0"]


def test_candidate_paths_prefers_known_paths(tmp_path):
    preferred = [str(tmp_path / "user"), "/missing/global"]
    (tmp_path / "user").mkdir()
    found = ["/spot/one", str(tmp_path / "user"), "/spot/two"]
    assert runtimes.candidate_paths(preferred, found) == [
        str(tmp_path / "user"), "/spot/one", "/spot/two",
    ]


def test_payload_adjacent_path():
    path = "/Users/x/Library/Application Support/Webwrap/Engines.noindex/x/MyApp"
    assert runtimes.payload_adjacent_path(path) == \
        "/Users/x/Library/Application Support/Webwrap/Webwrap.app"
    assert runtimes.payload_adjacent_path("/elsewhere") is None


def test_read_runtime_lists(tmp_path):
    path = make_runtime(tmp_path / "Webwrap.app", "2.4.0",
                        change_list=["New thing"], fix_list=["Fixed thing"])
    inst = runtimes.read_runtime(path)
    assert inst.version == "2.4.0"
    assert inst.change_list == ["New thing"]
    assert inst.fix_list == ["Fixed thing"]
