import os
from types import SimpleNamespace

import pytest

import launcher
from dialogs import CANCELLED
from errors import LaunchError
from models import EngineSource

SOURCE = EngineSource(bundle_id="com.brave.Browser", executable="Brave Browser")


class FakeProc:
    pid = 4242

    def __init__(self, code=None):
        self.code = code

    def poll(self):
        return self.code


def _popen(code=None, error=None):
    calls = []

    def popen(args, **kwargs):
        calls.append(args)
        if error:
            raise error
        return FakeProc(code)

    popen.calls = calls
    return popen


def test_launch_app_alive():
    popen = _popen()
    proc = launcher.launch_app("/bin/engine", ["--x"], popen=popen, sleep=lambda s: None)
    assert proc.pid == 4242
    assert popen.calls == [["/bin/engine", "--x"]]


@pytest.mark.parametrize("code,match", [
    (127, "not found"),
    (126, "could not run"),
    (3, "quit with code 3"),
])
def test_launch_app_early_exit(code, match):
    with pytest.raises(LaunchError, match=match):
        launcher.launch_app("/bin/engine", popen=_popen(code), sleep=lambda s: None)


def test_launch_app_missing_executable():
    with pytest.raises(LaunchError, match="executable not found"):
        launcher.launch_app("/nope", popen=_popen(error=FileNotFoundError()))


def test_launch_engine_uses_app_profile(make_app):
    app = make_app()
    popen = _popen()
    launcher.launch_engine(app, SOURCE, ["https://example.com"],
                           popen=popen, sleep=lambda s: None)
    assert popen.calls == [[
        os.path.join(app.contents_path, "MacOS", "Brave Browser"),
        f"--user-data-dir={app.profile_path}",
        "https://example.com",
    ]]


def test_launch_urls_waits_for_running_engine(make_app):
    app = make_app()
    with pytest.raises(LaunchError, match="does not appear to be running"):
        launcher.launch_urls(app, SOURCE, ["file:///w.html"], sleep=lambda s: None,
                             run=lambda *a, **k: None)


def test_launch_urls_sends_to_engine(make_app):
    app = make_app()
    os.makedirs(app.profile_path)
    os.symlink("120.0", os.path.join(app.profile_path, "RunningChromeVersion"))
    calls = []
    launcher.launch_urls(app, SOURCE, ["file:///w.html"],
                         run=lambda args, **kw: calls.append(args))
    assert calls[0][-1] == "file:///w.html"


def _runtime_with_script(tmp_path):
    scripts = tmp_path / "Webwrap.app" / "Contents" / "Resources" / "Scripts"
    scripts.mkdir(parents=True)
    (scripts / "update.sh").write_text("exit 0\n")
    return SimpleNamespace(path=str(tmp_path / "Webwrap.app"), version="2.5.0")


@pytest.mark.parametrize("code,expected", [(0, True), (2, CANCELLED)])
def test_run_runtime_updater(tmp_path, make_app, code, expected):
    runtime = _runtime_with_script(tmp_path)
    app = make_app()
    calls = []

    def run(args):
        calls.append(args)
        return SimpleNamespace(returncode=code)

    assert launcher.run_runtime_updater(runtime, app, run=run) is expected
    assert calls[0][2] == app.app_path


def test_run_runtime_updater_failure(tmp_path, make_app):
    runtime = _runtime_with_script(tmp_path)
    with pytest.raises(LaunchError, match="failed with code 1"):
        launcher.run_runtime_updater(runtime, make_app(),
                                     run=lambda args: SimpleNamespace(returncode=1))


def test_run_runtime_updater_missing_script(tmp_path, make_app):
    runtime = SimpleNamespace(path=str(tmp_path), version="2.5.0")
    with pytest.raises(LaunchError, match="Unable to load update script"):
        launcher.run_runtime_updater(runtime, make_app())
