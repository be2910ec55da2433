"""Webwrap – update orchestrator.

Two independent checks run after the app is otherwise ready:

  * local: a newer runtime found on disk, offered according to the app's
    update action (Never / Auto / Ask)
  * remote: the latest GitHub release, checked at most every couple of
    days and remembered in a one-line record file:

        <next check epoch seconds>|<downloaded version>|<last error>
"""

import logging
import re
import time
import webbrowser
from dataclasses import dataclass, field

import requests

import dialogs
import fileops
import versions
from config import (
    GITHUB_RELEASES_URL,
    GITHUB_REPO,
    GITHUB_TIMEOUT_SECONDS,
    RUNTIME_NAME,
    UPDATE_CHECK_INTERVAL_DAYS,
    UPDATE_CHECK_RETRY_DAYS,
)
from errors import DialogError, FileOpError, UpdateCheckError, WebwrapError

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

BTN_UPDATE = "Update"
BTN_LATER = "Later"
BTN_IGNORE = "Don't Ask Again For This Version"

BTN_DOWNLOAD = "Download"
BTN_REMIND = "Remind Me Later"
BTN_IGNORE_REMOTE = "Ignore This Version"

_DATE = re.compile(r"^[1-9][0-9]*$")
_TAG = re.compile(r"^v(\d+\.\d+\.\d+\S*)$")
_DESCRIPTION = re.compile(r"<webwrap>(.*)</webwrap>", re.DOTALL)
_LIST_DELIM = "\n\n   ▪️ "


# ── Local runtime update ─────────────────────────────────────────────────────

def update_message(app_version, update, backup_path=""):
    """Text of the local update dialog."""
    message = (f"Do you want to update this app from version {app_version}"
               f" to version {update.version}?")

    desc = ""
    if update.change_list:
        desc += (f"\n\nNEW IN VERSION {update.version}:"
                 + _LIST_DELIM + _LIST_DELIM.join(update.change_list))
    if update.fix_list:
        desc += (f"\n\nFIXED IN VERSION {update.version}:"
                 + _LIST_DELIM + _LIST_DELIM.join(update.fix_list))

    if versions.vcmp(update.version, ">", app_version, 2):
        desc = "\n\n🚀 MAJOR UPDATE" + desc
        if update.desc_major:
            desc += (f"\n\nNEW IN VERSION {versions.major(update.version)}:"
                     + _LIST_DELIM + _LIST_DELIM.join(update.desc_major))
    message += desc

    if not update.is_release:
        message += ("\n\n⚠️ Note: This is a BETA release, and may be unstable."
                    " If anything goes wrong, you can find a backup of the app"
                    f" in your Backups folder ({backup_path}).")
    return message


def check_app_update(app, app_config, located, apply_update, backup_path=""):
    """Offer (or silently apply) an update to a newer runtime.

    *apply_update(runtime, app)* hands the app to the new runtime's updater.
    It normally doesn't return on success; it returns CANCELLED if the user
    backed out and raises a WebwrapError on failure.

    Returns the action taken: BTN_UPDATE, BTN_LATER, BTN_IGNORE or None
    when there was nothing to do. Raises UpdateCheckError if the update
    itself failed.
    """
    if app_config.update_action == "Never":
        logger.debug("This app is set to never update itself.")
        return None
    update = located.update
    if update is None:
        logger.debug("No newer version found.")
        return None

    if app_config.update_action == "Auto" and \
            versions.vcmp(app.version, "==", update.version, 2):
        logger.debug("Automatically updating.")
        choice = BTN_UPDATE
    else:
        buttons = [BTN_UPDATE]
        if not located.cannot_create:
            buttons.append(BTN_IGNORE)
        try:
            choice = dialogs.dialog(
                update_message(app.version, update, backup_path),
                "Update", buttons, cancel=BTN_LATER,
            )
        except DialogError as exc:
            dialogs.alert(
                f"{RUNTIME_NAME} version {update.version} was found (this app is"
                f" using version {app.version}) but the update dialog failed."
                f" ({exc.message}) If you don't want to update the app, you'll"
                " need to use Activity Monitor to quit now.",
                "Update",
            )
            choice = BTN_UPDATE
        if choice is dialogs.CANCELLED:
            choice = BTN_LATER

    if choice == BTN_UPDATE:
        logger.info("Updating app to version %s.", update.version)
        try:
            result = apply_update(update, app)
        except WebwrapError as exc:
            raise UpdateCheckError(f"Unable to complete update. ({exc.message})") from exc
        except OSError as exc:
            raise UpdateCheckError(f"Unable to complete update. ({exc})") from exc
        if result is dialogs.CANCELLED:
            logger.info("Update cancelled.")
    elif choice == BTN_IGNORE:
        app_config.update_ignore_versions = list(app_config.update_ignore_versions) + [update.version]
        logger.info("Ignoring version %s for updates.", update.version)
    return choice


# ── Remote release check ─────────────────────────────────────────────────────

@dataclass
class CheckRecord:
    next_date: int = 0
    version: str = ""
    last_error: str = ""

    @classmethod
    def parse(cls, line):
        line = line.strip()
        parts = line.split("|")
        if len(parts) >= 3:
            date, version, error = parts[0], parts[1], "|".join(parts[2:])
        elif len(parts) == 2:
            date, version, error = parts[0], "", parts[1]
        else:
            date, version, error = parts[0], "", ""
        if not _DATE.match(date):
            logger.error("Malformed date '%s' found in update check info file.", date)
            date = "0"
        return cls(int(date), version, error)

    def format(self):
        error = " ".join(self.last_error.replace("|", "/").split())
        return f"{self.next_date}|{self.version}|{error}\n"


@dataclass
class RemoteCheckResult:
    check_date: int
    version: str = ""
    prev_version: str = ""
    last_error: str = ""
    message: str = ""
    urls: list = field(default_factory=list)
    choice: str = ""
    error: str = ""
    is_fatal: str = ""


def read_record(path, latest_version):
    """Read the record file. Missing means check now; unusable raises."""
    try:
        with open(path, encoding="utf-8") as fh:
            record = CheckRecord.parse(fh.read())
    except FileNotFoundError:
        logger.debug("No update check info file found.")
        return CheckRecord()
    except (OSError, UnicodeDecodeError) as exc:
        raise UpdateCheckError("Unable to read update check info file.") from exc

    if record.version and versions.vcmp(record.version, "<=", latest_version or "0.0.0"):
        record.version = ""
    return record


def write_record(path, check_date, version, error):
    days = UPDATE_CHECK_RETRY_DAYS if error else UPDATE_CHECK_INTERVAL_DAYS
    record = CheckRecord(check_date + days * DAY_SECONDS, version, error)
    try:
        fileops.write_text(path, record.format(), "update check info file")
    except FileOpError as exc:
        raise UpdateCheckError("Unable to write update check info file.") from exc
    return record


def fetch_latest_release(repo=GITHUB_REPO, http=requests):
    """Return the GitHub API's latest-release document."""
    try:
        resp = http.get(
            f"https://api.github.com/repos/{repo}/releases/latest",
            timeout=GITHUB_TIMEOUT_SECONDS,
            headers={"Accept": "application/vnd.github+json"},
        )
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.debug("GitHub request failed: %s", exc)
        raise UpdateCheckError("Unable to retrieve data from GitHub.") from exc


def parse_release(data):
    """Pull (version, download urls, description) out of a release document."""
    match = _TAG.match((data or {}).get("tag_name") or "")
    if not match:
        raise UpdateCheckError(f"No {RUNTIME_NAME} release found on GitHub.")
    urls = [a["browser_download_url"] for a in data.get("assets", [])
            if a.get("browser_download_url")][:1]
    urls.append(data.get("html_url") or GITHUB_RELEASES_URL)
    desc = _DESCRIPTION.search(data.get("body") or "")
    return match.group(1), urls, desc.group(1).strip() if desc else ""


class RemoteUpdateChecker:
    """One run of the GitHub release check.

    In hand-off mode no dialog is shown; the caller gets the structured
    result and presents it itself.
    """

    def __init__(self, app_config, record_path, latest_version,
                 handoff=False, http=requests, now=None):
        self.app_config = app_config
        self.record_path = record_path
        self.latest_version = latest_version or "0.0.0"
        self.handoff = handoff
        self.http = http
        self.now = now or time.time

    def run(self):
        cfg = self.app_config
        if cfg.update_check_skip == "All":
            return None
        if cfg.last_error_github_fatal:
            logger.debug("GitHub checking is disabled.")
            return None

        check_date = int(self.now())
        try:
            record = read_record(self.record_path, self.latest_version)
        except UpdateCheckError as exc:
            return self._handle_error(RemoteCheckResult(check_date), "", exc.message)

        if record.next_date >= check_date:
            logger.debug("Not yet due for GitHub update check.")
            return None

        result = RemoteCheckResult(
            check_date, prev_version=record.version, last_error=record.last_error,
        )
        try:
            self._check(result, record)
        except UpdateCheckError as exc:
            result.error = exc.message

        if result.version and not result.error:
            if self.handoff:
                return result
            self._offer(result, record)

        fatal = ""
        try:
            write_record(self.record_path, check_date,
                         result.version or record.version, result.error)
        except UpdateCheckError as exc:
            fatal = exc.message
        if result.error or fatal:
            return self._handle_error(result, result.error, fatal)
        return result

    def _check(self, result, record):
        remote, urls, description = parse_release(
            fetch_latest_release(http=self.http)
        )
        against = record.version or self.latest_version
        if not versions.vcmp(against, "<", remote):
            logger.debug(
                "Latest %s version on GitHub (%s) is not newer than %s.",
                RUNTIME_NAME, remote, against,
            )
            return
        logger.info("Found new %s version %s on GitHub.", RUNTIME_NAME, remote)
        result.version = remote
        result.urls = urls
        result.message = f"A new version of {RUNTIME_NAME} ({remote}) is available on GitHub."
        if description:
            result.message += f" This update includes the following changes:\n\n{description}"

    def _offer(self, result, record):
        try:
            choice = dialogs.dialog(
                result.message, "Update Available",
                [BTN_DOWNLOAD, BTN_IGNORE_REMOTE], cancel=BTN_REMIND,
            )
        except DialogError:
            result.error = "Unable to display update dialog."
            logger.error(result.error)
            result.version = record.version
            return

        if choice == BTN_DOWNLOAD:
            result.choice = BTN_DOWNLOAD
            opened = all(webbrowser.open(url) for url in result.urls)
            if not opened:
                dialogs.alert(
                    "Unable to open update page on GitHub. Please try downloading"
                    f" this update yourself at the following URL:\n\n{result.urls[-1]}",
                    "Unable To Download",
                )
        elif choice is dialogs.CANCELLED:
            # not recorded, so it's offered again next time
            result.choice = BTN_REMIND
            result.version = ""
        else:
            result.choice = BTN_IGNORE_REMOTE

    def _handle_error(self, result, error, fatal):
        """Report an error once; a fatal one disables checking for good."""
        if result.last_error and result.last_error == error:
            error = ""

        warning = ""
        if fatal:
            logger.error("GitHub checking will be disabled.")
            warning = ("Warning: A serious error occurred while checking GitHub for"
                       f" new versions of {RUNTIME_NAME}. ({fatal})")
            if error:
                warning += f"\n\nA less serious error also occurred. ({error})"
            warning += (f"\n\nGitHub checks must be disabled. {RUNTIME_NAME} and"
                        " your apps will not be able to notify you of future versions.")
        elif error:
            warning = ("Warning: An error occurred while checking GitHub for a new"
                       f" version of {RUNTIME_NAME}. ({error})\n\nThis alert will only"
                       " be shown once. All errors can be found in the app log.")

        result.error = warning
        result.is_fatal = fatal
        if not self.handoff:
            if warning:
                dialogs.alert(f"⚠️ {warning}", "Checking For Update")
            self.app_config.last_error_github_fatal = fatal
        return result


def check_github_update(app_config, record_path, latest_version, handoff=False, **kwargs):
    return RemoteUpdateChecker(app_config, record_path, latest_version,
                               handoff=handoff, **kwargs).run()
