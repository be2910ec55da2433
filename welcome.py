"""Webwrap – welcome notice.

After a launch that changed something (new app, update, edit, engine
change, profile reset) the app opens a bundled welcome page once. What
changed is passed to the page in its query string.
"""

import logging
import os
from urllib.parse import quote

import fileops
from config import WELCOME_PAGE, WELCOME_SOURCE_PATH
from errors import FileOpError

logger = logging.getLogger(__name__)


def encode(value):
    return quote(str(value), safe="")


class WelcomeNotice:
    def __init__(self, base_url, title):
        self.url = base_url
        self.title = title

    def add(self, key, value="1"):
        self.url += f"&{key}={value}"

    def extend(self, args):
        """Append pre-encoded ``key=value`` arguments."""
        if args:
            self.url += "&" + args

    def __repr__(self):
        return f"WelcomeNotice({self.title!r}, {self.url!r})"


def base_url(app):
    page = os.path.join(app.welcome_path, WELCOME_PAGE)
    return f"file://{quote(page, safe='/')}?v={app.version}&e={encode(app.engine_type)}"


def build_notice(app, status, engine_name=""):
    """Return the WelcomeNotice for this launch, or None if nothing changed."""
    url = base_url(app)
    notice = None

    if status.new_app:
        logger.debug("Creating new app welcome page.")
        return WelcomeNotice(url, f"App Created ({app.version})")

    if status.old_version:
        logger.debug("Creating app update welcome page.")
        title = "App Edited and Updated " if status.edited else "App Updated "
        notice = WelcomeNotice(f"{url}&ov={encode(status.old_version)}",
                               f"{title}({status.old_version} -> {app.version})")

    if status.edited:
        if notice is None:
            logger.debug("Creating edited app welcome page.")
            notice = WelcomeNotice(url, "App Edited")
        notice.add("ed")

    if status.old_engine:
        if notice is None:
            logger.debug("Creating app engine change welcome page.")
            notice = WelcomeNotice(
                url,
                f"App Engine Changed ({status.old_engine_name} -> {engine_name})",
            )
        notice.add("oe", encode(status.old_engine))

    if status.reset:
        if notice is None:
            logger.debug("Creating app reset welcome page.")
            notice = WelcomeNotice(url, "App Settings Reset")
        notice.add("r")

    return notice


def offer_extensions(notice, app, status, harvester):
    """Offer browser extensions if the app has none installed yet."""
    if notice is None:
        return
    if status.new_app or not os.path.isdir(
        os.path.join(app.profile_path, "Default", "Extensions")
    ):
        logger.debug("App has no extensions, so offering browser extensions.")
        scan = harvester.scan()
        if scan.url_args:
            notice.add("xi")
            notice.extend(scan.url_args)


def update_welcome_assets(app, status):
    """Copy the welcome page into the data directory when it may be stale.

    Returns an error message, or "" on success. Failures here are never
    fatal.
    """
    page = os.path.join(app.welcome_path, WELCOME_PAGE)
    if not status.any_change and os.path.exists(page):
        return ""

    logger.debug("Updating welcome page assets.")
    src = os.path.join(app.contents_path, WELCOME_SOURCE_PATH)
    try:
        fileops.safe_copy(src, app.welcome_path, "welcome page")
    except FileOpError:
        message = ("Unable to create welcome page. You will not see important"
                   " information on the app's first run.")
        logger.error(message)
        return message

    link = os.path.join(app.welcome_path, "img", "ext")
    try:
        os.makedirs(os.path.dirname(link), exist_ok=True)
        if os.path.lexists(link):
            os.unlink(link)
        os.symlink(os.path.relpath(app.ext_icon_path, os.path.dirname(link)), link)
    except OSError as exc:
        logger.error("Unable to link to extension icon directory: %s", exc)
        return "Unable to link to extension icon directory."
    return ""
