"""Webwrap – app launcher.

Runs every time a Webwrap app is opened: works out what changed since the
last run, gets the engine payload and profile ready, offers updates, then
swaps the engine into the app bundle and runs it until it quits.

Launch:
    python app.py [url ...]
"""

import logging
import os
import sys
import webbrowser
from urllib.parse import quote

import appconfig
import backup
import dialogs
import launcher
import runtimes
import updates
import welcome
from config import (
    APP_ICON_PATH,
    APP_LOG_NAME,
    DEBUG,
    LOG_PRESERVE,
    RUNTIME_NAME,
)
from engines import browser_info, find_external_engine, internal_engine_source
from errors import (
    ConfigError,
    DialogError,
    LockError,
    PayloadError,
    UpdateCheckError,
    WebwrapError,
)
from extensions import ExtensionHarvester
from locks import AppLock
from logsetup import setup_logging
from models import AppInstance, EngineSource, EngineType, LaunchStatus
from payload import EnginePayload, PayloadState
from profiles import MasterPrefs, prepare_profile
from status import Status

logger = logging.getLogger("webwrap")

BTN_QUIT = "Quit"
BTN_VIEW_LOG = "View Log"


class AppLaunch:
    """One launch of one app.

    Each step raises on a fatal problem; run() chains the steps through a
    Status so the first failure skips the rest. Non-fatal problems are
    collected in self.warnings and shown together once the engine is up;
    any raised after that are shown when the run ends.
    """

    def __init__(self, app, urls=(), search=runtimes.spotlight_search, home=None):
        self.app = app
        self.urls = list(urls)
        self.search = search
        self.home = home

        self.status = Status()
        self.launch_status = LaunchStatus()
        self.store = appconfig.ConfigStore(
            app.config_path, external=not app.engine_type.is_internal
        )
        self.harvester = ExtensionHarvester(app.ext_icon_path)
        self.located = None
        self.payload = None
        self.source = None
        self.notice = None
        self.process = None
        self.engine_exited = False
        self.updated = False
        self.activated = False
        self.config_loaded = False
        self.warnings = []
        self.warnings_shown = 0

    @property
    def config(self):
        return self.store.config

    def warn(self, message):
        if message:
            logger.warning(message)
            self.warnings.append(message)

    # ── Whole run ────────────────────────────────────────────────────────

    def run(self):
        """Run every step. Returns the Status of the run."""
        st = self.status
        st.attempt(self.load_config)
        st.attempt(self.derive_status)
        st.attempt(self.settle_payload)
        st.attempt(self.locate_runtimes)
        st.attempt(self.update_backup)
        st.attempt(self.check_local_update)
        if st and self.updated:
            logger.info("App handed to the %s updater. Not launching.", RUNTIME_NAME)
        else:
            st.attempt(self.prepare_payload)
            st.attempt(self.prepare_data_dir)
            st.attempt(self.launch)
            if self.activated:
                st.always(self.deactivate, errmsg="Unable to deactivate engine.")

        with st.cleanup(errmsg="Unable to save app settings."):
            self.save_config()

        self.show_warnings()
        return st

    # ── Configuration ────────────────────────────────────────────────────

    def load_config(self):
        if self.store.exists:
            self.store.load()
        else:
            logger.info("No configuration found. This is a new app.")
            self.launch_status.new_app = True
        self.config_loaded = True

    def derive_status(self):
        app, cfg, ls = self.app, self.config, self.launch_status
        if ls.new_app:
            return ls

        if cfg.last_run_version and cfg.last_run_version != app.version:
            logger.info("App updated from %s to %s.", cfg.last_run_version, app.version)
            ls.old_version = cfg.last_run_version

        if app.build_stamp and cfg.build_stamp and cfg.build_stamp != app.build_stamp:
            logger.info("App has been edited.")
            ls.edited = True

        if cfg.app_path and cfg.app_path != app.app_path:
            logger.info("App moved from '%s'.", cfg.app_path)

        if cfg.last_run_engine_type and cfg.last_run_engine_type != str(app.engine_type):
            try:
                old = EngineType.parse(cfg.last_run_engine_type)
            except ConfigError as exc:
                logger.warning("Ignoring last engine type: %s", exc.message)
            else:
                logger.info("App engine changed from %s to %s.", old, app.engine_type)
                ls.old_engine = old
                ls.old_engine_name = browser_info(old.bundle_id).get("name") or old.bundle_id

        if not os.path.exists(os.path.join(app.profile_path, "First Run")):
            logger.info("App profile needs a first-run reset.")
            ls.reset = True
        return ls

    def save_config(self):
        """Write back what this run learned. Skipped if loading failed."""
        if not self.config_loaded:
            return False
        app, cfg = self.app, self.config
        if self.status and not self.updated:
            cfg.app_path = app.app_path
            cfg.last_run_version = app.version
            cfg.last_run_engine_type = str(app.engine_type)
            cfg.build_stamp = app.build_stamp
        return self.store.save(force=self.launch_status.new_app)

    # ── Runtimes and updates ─────────────────────────────────────────────

    def locate_runtimes(self):
        cfg = self.config
        self.located = runtimes.locate(
            self.app, cfg.payload_path, cfg.update_ignore_versions, search=self.search,
        )
        cfg.update_ignore_versions = self.located.ignore_versions
        self.launch_status.cannot_create_payload = self.located.cannot_create
        logger.debug("Runtime search outcome: %s", self.located.outcome.name)
        return self.located

    def update_backup(self):
        try:
            backup.update_failsafe(self.app, self.launch_status)
        except WebwrapError as exc:
            self.warn(f"Unable to back up app. ({exc.message})")
        except OSError as exc:
            self.warn(f"Unable to back up app. ({exc})")

    def _apply_update(self, runtime, app):
        result = launcher.run_runtime_updater(runtime, app)
        if result is True:
            self.updated = True
        return result

    def check_local_update(self):
        try:
            updates.check_app_update(
                self.app, self.config, self.located, self._apply_update,
                backup_path=self.app.backup_path,
            )
        except UpdateCheckError as exc:
            if self.launch_status.cannot_create_payload:
                raise
            self.warn(exc.message)

    def check_remote_update(self):
        latest = self.located.latest.version if self.located and self.located.latest \
            else self.app.version
        updates.check_github_update(self.config, self.app.update_check_path, latest)

    # ── Engine payload ───────────────────────────────────────────────────

    def settle_payload(self):
        """Put the payload into a known state before anything else reads it."""
        app, cfg = self.app, self.config
        path = cfg.payload_path or app.default_payload_path
        self.payload = EnginePayload(app, path, EngineSource.from_list(cfg.engine_source))
        if self.payload.state() is PayloadState.ACTIVE:
            logger.warning("Engine was left active by an earlier run. Deactivating.")
            self.payload.deactivate()
        return self.payload

    def find_source(self):
        """Where a fresh payload would come from, or None."""
        app, cfg = self.app, self.config
        if app.engine_type.is_internal:
            if not self.located.current:
                return None
            return internal_engine_source(self.located.current.path)

        explicit = cfg.external_engine_path
        source = None
        if explicit and os.path.isdir(explicit):
            source = find_external_engine(app.engine_type, explicit, search=self.search)
        return source or find_external_engine(app.engine_type, search=self.search)

    def _needs_rebuild(self, source):
        ls, current = self.launch_status, self.payload.source
        if ls.old_engine or ls.old_version or ls.edited:
            return True
        if not current:
            return True
        return source.bundle_id != current.bundle_id or source.version != current.version

    def prepare_payload(self):
        app, cfg, ls, payload = self.app, self.config, self.launch_status, self.payload
        state = payload.state()
        source = self.find_source()

        if state is PayloadState.INACTIVE:
            if source is None:
                if ls.old_engine:
                    raise PayloadError(self._missing_source_message())
                logger.debug("No engine source found. Keeping existing payload.")
            elif self._needs_rebuild(source):
                logger.info("Rebuilding engine payload.")
                payload.delete()
                state = PayloadState.NO_PAYLOAD
        elif state is PayloadState.CORRUPT:
            logger.warning("Engine payload is corrupt. Deleting it.")
            payload.delete()
            state = PayloadState.NO_PAYLOAD

        if state is PayloadState.NO_PAYLOAD:
            if source is None:
                raise PayloadError(self._missing_source_message())
            icon = os.path.join(app.contents_path, APP_ICON_PATH)
            payload.create(source, icon)
            cfg.engine_source = source.to_list()
            cfg.payload_path = payload.path
            if not app.engine_type.is_internal:
                cfg.external_engine_path = source.path
                cfg.external_engine_version = source.version

        self.source = payload.source
        return self.source

    def _missing_source_message(self):
        engine_type = self.app.engine_type
        if engine_type.is_internal:
            return (f"Unable to find {RUNTIME_NAME} {self.app.version} to create"
                    " the app engine.")
        name = browser_info(engine_type.bundle_id).get("name") or engine_type.bundle_id
        return f"Unable to find {name} to create the app engine."

    # ── Data directory and profile ───────────────────────────────────────

    def prepare_data_dir(self):
        app, ls, cfg = self.app, self.launch_status, self.config
        os.makedirs(app.data_path, exist_ok=True)
        self.warn(welcome.update_welcome_assets(app, ls))

        engine_name = self.source.display_name or browser_info(
            app.engine_type.bundle_id).get("name", "")
        self.notice = welcome.build_notice(app, ls, engine_name)
        welcome.offer_extensions(self.notice, app, ls, self.harvester)

        message = prepare_profile(app, ls, self.notice, self.harvester, self.home)
        cfg.extension_install_error = message if ls.old_engine else ""
        self.warn(message)

    # ── Launch ───────────────────────────────────────────────────────────

    def launch(self):
        """Swap the engine in and run it until it quits.

        Once the engine process exists nothing is fatal, and the process is
        always waited for. The caller swaps the engine back out with
        deactivate().
        """
        app, ls = self.app, self.launch_status
        prefs = None
        if ls.new_app or ls.reset:
            prefs = MasterPrefs(app, self.source)
            try:
                prefs.install()
            except WebwrapError as exc:
                self.warn(exc.message)
                prefs = None

        try:
            self.payload.activate()
            self.activated = True
            self.process = launcher.launch_engine(app, self.source, self.urls)
            try:
                self.engine_started(prefs)
            finally:
                self.wait_for_engine()
        finally:
            if prefs is not None and prefs.installed:
                self.warn(prefs.clear())

    def engine_started(self, prefs=None):
        """Follow-up work while the engine runs. Problems become warnings."""
        if self.notice is not None:
            try:
                launcher.launch_urls(self.app, self.source, [self.notice.url], "welcome page")
            except WebwrapError as exc:
                self.warn(f"Unable to open welcome page. ({exc.message})")
        if prefs is not None:
            self.warn(prefs.clear())
        try:
            self.check_remote_update()
        except WebwrapError as exc:
            self.warn(exc.message)
        self.show_warnings()

    def wait_for_engine(self):
        if self.process is None or self.engine_exited:
            return
        code = self.process.wait()
        self.engine_exited = True
        logger.info("App engine quit with code %s.", code)

    def deactivate(self):
        self.wait_for_engine()
        self.payload.deactivate()
        self.activated = False

    def show_warnings(self):
        """Alert the warnings collected since the last alert."""
        pending = self.warnings[self.warnings_shown:]
        self.warnings_shown = len(self.warnings)
        if pending:
            dialogs.alert("⚠️ " + " ".join(pending), "Warning")


# ── Entry point ──────────────────────────────────────────────────────────────

def abort(message, log_file=None, code=1):
    """Tell the user the app can't run, then exit."""
    logger.error("Aborting: %s", message)
    buttons = (BTN_QUIT, BTN_VIEW_LOG) if log_file else (BTN_QUIT,)
    try:
        choice = dialogs.dialog(message, "Unable to Run", buttons)
    except DialogError as exc:
        logger.error("%s", exc.message)
        choice = BTN_QUIT
    if choice == BTN_VIEW_LOG:
        webbrowser.open("file://" + quote(log_file, safe="/"))
    sys.exit(code)


def main(argv=None, environ=None):
    argv = sys.argv[1:] if argv is None else argv
    try:
        app = AppInstance.from_environment(environ)
    except ConfigError as exc:
        setup_logging(debug=DEBUG)
        abort(exc.message)

    log_file = os.path.join(app.data_path, APP_LOG_NAME)
    setup_logging(log_file, debug=DEBUG, preserve=LOG_PRESERVE)
    logger.info("Launching %s (%s %s, engine %s).",
                app.name, RUNTIME_NAME, app.version, app.engine_type)

    try:
        with AppLock(app.lock_path):
            status = AppLaunch(app, argv).run()
    except LockError as exc:
        abort(exc.message, log_file)
    except OSError as exc:
        abort(f"Unable to lock app data directory. ({exc})", log_file)

    if not status:
        abort(status.message, log_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
