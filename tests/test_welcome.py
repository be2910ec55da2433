import os

import welcome
from models import EngineType, LaunchStatus


def test_base_url(make_app):
    app = make_app(version="2.4.3")
    url = welcome.base_url(app)
    assert url.startswith("file://")
    assert url.endswith("/Welcome/welcome.html?v=2.4.3&e=internal%7Ccom.brave.Browser")


def test_no_change_means_no_notice(make_app):
    assert welcome.build_notice(make_app(), LaunchStatus()) is None


def test_new_app_title(make_app):
    notice = welcome.build_notice(make_app(version="2.4.3"), LaunchStatus(new_app=True))
    assert notice.title == "App Created (2.4.3)"


def test_edited_and_updated(make_app):
    app = make_app(version="2.4.3")
    notice = welcome.build_notice(app, LaunchStatus(old_version="2.4.1", edited=True))
    assert notice.title == "App Edited and Updated (2.4.1 -> 2.4.3)"
    assert notice.url.endswith("&ov=2.4.1&ed=1")


def test_engine_change_and_reset(make_app):
    app = make_app()
    old = EngineType.parse("external|com.google.Chrome")
    status = LaunchStatus(old_engine=old, old_engine_name="Google Chrome", reset=True)
    notice = welcome.build_notice(app, status, "Brave Browser")
    assert notice.title == "App Engine Changed (Google Chrome -> Brave Browser)"
    assert notice.url.endswith("&oe=external%7Ccom.google.Chrome&r=1")


def test_reset_only(make_app):
    notice = welcome.build_notice(make_app(), LaunchStatus(reset=True))
    assert notice.title == "App Settings Reset"


def test_update_welcome_assets(make_app):
    app = make_app()
    assert welcome.update_welcome_assets(app, LaunchStatus(new_app=True)) == ""
    assert os.path.isfile(os.path.join(app.welcome_path, "welcome.html"))
    link = os.path.join(app.welcome_path, "img", "ext")
    assert os.path.realpath(link) == os.path.realpath(app.ext_icon_path)


def test_update_welcome_assets_failure_is_reported(make_app):
    app = make_app()
    os.rename(os.path.join(app.contents_path, "Resources", "Welcome"),
              os.path.join(app.contents_path, "Resources", "Gone"))
    message = welcome.update_welcome_assets(app, LaunchStatus(new_app=True))
    assert message.startswith("Unable to create welcome page.")


class _FakeHarvester:
    def __init__(self, args):
        self.args = args

    def scan(self, search_paths=None):
        from extensions import ExtensionScan
        return ExtensionScan(args=self.args)


def test_offer_extensions_for_new_app(make_app):
    app = make_app()
    notice = welcome.WelcomeNotice("file:///w.html?v=1", "t")
    welcome.offer_extensions(notice, app, LaunchStatus(new_app=True),
                             _FakeHarvester(["x=a%2CA"]))
    assert notice.url == "file:///w.html?v=1&xi=1&x=a%2CA"
