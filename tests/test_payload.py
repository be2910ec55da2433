import os
import plistlib

import pytest

import engines
from conftest import make_runtime
from errors import PayloadError, SafetyError
from payload import EnginePayload, PayloadState


def _tree(root):
    result = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            result.append(os.path.relpath(os.path.join(dirpath, name), root))
    return sorted(result)


def _read_plist(path):
    with open(path, "rb") as fh:
        return plistlib.load(fh)


@pytest.fixture
def built(tmp_path, make_app):
    app = make_app()
    runtime = make_runtime(tmp_path / "Webwrap.app", "2.1.0")
    source = engines.internal_engine_source(runtime)
    payload = EnginePayload(app, app.default_payload_path)
    icon = os.path.join(app.contents_path, "Resources", "app.icns")
    payload.create(source, icon)
    return app, payload, source


def test_no_payload(make_app):
    app = make_app()
    assert EnginePayload(app, app.default_payload_path).state() is PayloadState.NO_PAYLOAD


def test_create_leaves_payload_inactive_and_customized(built):
    app, payload, source = built
    assert payload.state() is PayloadState.INACTIVE
    info = _read_plist(os.path.join(payload.engine_path, "Info.plist"))
    assert info["CFBundleIdentifier"] == "org.webwrap.app.MyApp"
    assert info["CFBundleName"] == "My App"
    assert "CFBundleURLTypes" not in info
    strings = os.path.join(payload.engine_path, "Resources", "en.lproj", "InfoPlist.strings")
    with open(strings, encoding="utf-8") as fh:
        assert 'CFBundleName = "My App";' in fh.read()
    with open(os.path.join(payload.engine_path, "Resources", "app.icns"), "rb") as fh:
        assert fh.read() == b"icns-app"
    assert os.readlink(os.path.join(app.data_path, "Engine")) == payload.path


def test_create_does_not_touch_engine_source(built):
    _, _, source = built
    info = _read_plist(os.path.join(source.path, "Info.plist"))
    assert info["CFBundleIdentifier"] == "com.brave.Browser"
    with open(os.path.join(source.path, "Resources", "app.icns"), "rb") as fh:
        assert fh.read() == b"icns-engine"


def test_create_refuses_existing_payload(built):
    _, payload, source = built
    with pytest.raises(PayloadError):
        payload.create(source)


def test_activate_deactivate_round_trip(built):
    app, payload, _ = built
    launcher_layout = _tree(app.contents_path)
    engine_layout = _tree(payload.engine_path)

    payload.activate()
    assert payload.state() is PayloadState.ACTIVE
    assert payload.is_active
    assert _tree(app.contents_path) == engine_layout
    assert _tree(payload.launcher_path) == launcher_layout

    payload.deactivate()
    assert payload.state() is PayloadState.INACTIVE
    assert _tree(app.contents_path) == launcher_layout
    assert _tree(payload.engine_path) == engine_layout


def test_activate_twice_is_fatal(built):
    _, payload, _ = built
    payload.activate()
    with pytest.raises(PayloadError, match="already activated"):
        payload.activate()


def test_failed_second_move_restores_contents(built, monkeypatch):
    app, payload, _ = built
    launcher_layout = _tree(app.contents_path)
    real_rename = os.rename

    def failing_rename(src, dst):
        if src == payload.engine_path:
            raise OSError("injected")
        return real_rename(src, dst)

    monkeypatch.setattr(os, "rename", failing_rename)
    with pytest.raises(PayloadError, match="Unable to activate engine."):
        payload.activate()
    monkeypatch.undo()
    assert _tree(app.contents_path) == launcher_layout
    assert payload.state() is PayloadState.INACTIVE


def test_stray_file_makes_payload_corrupt(built):
    _, payload, _ = built
    with open(os.path.join(payload.path, ".DS_Store"), "w") as fh:
        fh.write("x")
    assert not payload.validate()
    assert payload.state() is PayloadState.CORRUPT


def test_missing_executable_is_corrupt(built):
    _, payload, source = built
    os.unlink(os.path.join(payload.engine_path, "MacOS", source.executable))
    assert payload.state() is PayloadState.CORRUPT


def test_delete_refused_while_active(built):
    _, payload, _ = built
    payload.activate()
    with pytest.raises(PayloadError):
        payload.delete()
    assert not payload.delete(must_succeed=False)
    assert os.path.isdir(payload.launcher_path)


def test_delete_cleans_up(built):
    app, payload, _ = built
    user_dir = os.path.dirname(payload.path)
    assert payload.delete(sleep=lambda s: None)
    assert payload.state() is PayloadState.NO_PAYLOAD
    assert not os.path.exists(user_dir)
    assert not os.path.lexists(os.path.join(app.data_path, "Engine"))


def test_delete_outside_data_root_is_refused(tmp_path, make_app):
    app = make_app()
    outside = tmp_path / "elsewhere" / "MyApp"
    (outside / "Engine").mkdir(parents=True)
    payload = EnginePayload(app, str(outside))
    with pytest.raises(SafetyError):
        payload.delete()
    assert outside.exists()
