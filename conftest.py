"""Shared pytest fixtures: fake app bundles, runtimes, browsers and dialogs."""

import os
import plistlib
import stat

import pytest

import dialogs
from models import AppInstance, EngineType


class ScriptedPresenter:
    """Dialog presenter that answers from a list and records every call."""

    def __init__(self):
        self.answers = []
        self.calls = []

    def __call__(self, message, title, buttons, cancel):
        self.calls.append({"message": message, "title": title,
                           "buttons": buttons, "cancel": cancel})
        if not self.answers:
            return buttons[0]
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def titles(self):
        return [c["title"] for c in self.calls]


@pytest.fixture
def presenter():
    p = ScriptedPresenter()
    dialogs.set_presenter(p)
    yield p
    dialogs.set_presenter(None)


def write_plist(path, doc):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        plistlib.dump(doc, fh)


def write_executable(path, text="#!/bin/sh\nexit 0\n"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as fh:
        fh.write(text)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def make_contents(contents, bundle_id, executable="Engine", version="1.0", name="Engine"):
    """A minimal Contents directory for a browser or engine."""
    write_plist(os.path.join(contents, "Info.plist"), {
        "CFBundleIdentifier": bundle_id,
        "CFBundleExecutable": executable,
        "CFBundleName": name,
        "CFBundleDisplayName": name,
        "CFBundleShortVersionString": version,
        "CFBundleIconFile": "app.icns",
        "CFBundleDocumentTypes": [{"CFBundleTypeIconFile": "document.icns"}],
        "CFBundleURLTypes": [{"CFBundleURLSchemes": ["http"]}],
    })
    write_executable(os.path.join(contents, "MacOS", executable))
    lproj = os.path.join(contents, "Resources", "en.lproj")
    os.makedirs(lproj, exist_ok=True)
    with open(os.path.join(lproj, "InfoPlist.strings"), "w", encoding="utf-8") as fh:
        fh.write(f'CFBundleName = "{name}";\nCFBundleDisplayName = "{name}";\n')
    with open(os.path.join(contents, "Resources", "app.icns"), "wb") as fh:
        fh.write(b"icns-engine")
    return contents


def make_browser(path, bundle_id, executable="Browser", version="120.0", name="Browser"):
    make_contents(os.path.join(path, "Contents"), bundle_id, executable, version, name)
    return str(path)


def make_runtime(path, version, change_list=(), fix_list=()):
    """A runtime bundle with a version descriptor and a bundled engine."""
    scripts = os.path.join(path, "Contents", "Resources", "Scripts")
    os.makedirs(scripts, exist_ok=True)
    items = lambda values: " ".join(f"'{v}'" for v in values)
    with open(os.path.join(scripts, "version.sh"), "w", encoding="utf-8") as fh:
        fh.write(f"Version={version}\n")
        fh.write(f"ChangeList=( {items(change_list)} )\n")
        fh.write(f"FixList=( {items(fix_list)} )\n")
    make_contents(
        os.path.join(path, "Contents", "Resources", "Engine", "Payload"),
        "com.brave.Browser", "Brave Browser", "1.60", "Brave Browser",
    )
    return str(path)


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "Webwrap"
    root.mkdir()
    return str(root)


@pytest.fixture
def make_app(tmp_path, data_root):
    """Factory for an AppInstance with a launcher bundle on disk."""

    def factory(version="2.1.0", engine="internal|com.brave.Browser",
                app_id="MyApp", name="My App", build_stamp="stamp1"):
        app_path = tmp_path / "Applications" / f"{name}.app"
        contents = app_path / "Contents"
        (contents / "MacOS").mkdir(parents=True, exist_ok=True)
        write_executable(str(contents / "MacOS" / "Launcher"))
        write_plist(str(contents / "Info.plist"), {"CFBundleExecutable": "Launcher"})
        resources = contents / "Resources"
        (resources / "Welcome" / "img").mkdir(parents=True, exist_ok=True)
        (resources / "Welcome" / "welcome.html").write_text("<html></html>")
        (resources / "Profile" / "Prefs").mkdir(parents=True, exist_ok=True)
        (resources / "Profile" / "Prefs" / "prefs_nocreds.json").write_text("{}")
        (resources / "app.icns").write_bytes(b"icns-app")
        return AppInstance(
            app_id=app_id,
            app_path=str(app_path),
            version=version,
            engine_type=EngineType.parse(engine),
            name=name,
            build_stamp=build_stamp,
            data_root=data_root,
            user="tester",
        )

    return factory


@pytest.fixture
def no_default_runtimes(monkeypatch, tmp_path):
    """Point the default runtime install paths at empty locations."""
    import runtimes

    monkeypatch.setattr(runtimes, "USER_RUNTIME_PATH", str(tmp_path / "none-user" / "W.app"))
    monkeypatch.setattr(runtimes, "GLOBAL_RUNTIME_PATH", str(tmp_path / "none-global" / "W.app"))
