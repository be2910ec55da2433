"""Webwrap – process launching.

Starts the engine for an app and hands it URLs once it's running.
"""

import logging
import os
import subprocess
import time

import fileops
from config import ENGINE_OPEN_TIMEOUT, POLL_INTERVAL, VERSION_DESCRIPTOR_PATH
from dialogs import CANCELLED
from errors import LaunchError

logger = logging.getLogger(__name__)

ALIVE_CHECK_DELAY = 1.0
UPDATER_CANCELLED = 2      # exit code of the runtime updater when the user backs out


def launch_app(path, args=(), description=None, check_alive=True,
               popen=subprocess.Popen, sleep=time.sleep):
    """Start *path* with *args*. Returns the Popen object.

    With *check_alive*, waits a second and raises LaunchError if the
    process already quit with an error.
    """
    description = description or os.path.basename(path)
    try:
        proc = popen([path, *args], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except FileNotFoundError as exc:
        raise LaunchError(f"Error launching {description}: executable not found.") from exc
    except OSError as exc:
        raise LaunchError(f"Unknown error launching {description}: {exc}") from exc

    if not check_alive:
        return proc

    sleep(ALIVE_CHECK_DELAY)
    code = proc.poll()
    if code is None:
        logger.debug("Launched %s with PID %s.", description, proc.pid)
    elif code == 127:
        raise LaunchError(f"Error launching {description}: process {proc.pid} not found.")
    elif code == 126:
        raise LaunchError(f"Error launching {description}: could not run executable.")
    elif code != 0:
        raise LaunchError(f"Launched {description} but it quit with code {code}.")
    else:
        logger.debug("Launched %s and it finished with exit code 0.", description)
    return proc


def engine_executable(app, source):
    return os.path.join(app.contents_path, "MacOS", source.executable)


def launch_engine(app, source, urls=(), **kwargs):
    """Start the active engine on the app's profile."""
    return launch_app(
        engine_executable(app, source),
        [f"--user-data-dir={app.profile_path}", *urls],
        description="app engine",
        **kwargs,
    )


def launch_urls(app, source, urls, description="URLs", sleep=None, run=subprocess.run):
    """Send *urls* to the app's running engine."""
    logger.debug("Opening %s in running engine: %s", description, list(urls))
    running = os.path.join(app.profile_path, "RunningChromeVersion")
    wait = {"sleep": sleep} if sleep else {}
    if not fileops.wait_for(lambda: os.path.islink(running), "app to open",
                            ENGINE_OPEN_TIMEOUT, POLL_INTERVAL, **wait):
        raise LaunchError("App engine does not appear to be running.")
    try:
        run([engine_executable(app, source), f"--user-data-dir={app.profile_path}", *urls],
            check=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise LaunchError(f"Error sending {description} to app engine.") from exc


def run_runtime_updater(runtime, app, run=subprocess.run):
    """Hand *app* to the updater script of a newer runtime.

    Returns True once the app has been rebuilt, or CANCELLED if the user
    backed out of the updater.
    """
    script = os.path.join(runtime.path, os.path.dirname(VERSION_DESCRIPTOR_PATH), "update.sh")
    if not os.path.isfile(script):
        raise LaunchError(f"Unable to load update script {runtime.version}.")
    try:
        result = run(["/bin/bash", script, app.app_path])
    except OSError as exc:
        raise LaunchError(f"Unable to run update script {runtime.version}.") from exc
    if result.returncode == UPDATER_CANCELLED:
        return CANCELLED
    if result.returncode != 0:
        raise LaunchError(f"Update script {runtime.version} failed with code {result.returncode}.")
    return True
