"""Build script for Webwrap.

Build the standalone macOS launcher .app:
    python setup.py py2app

Install the modules for development and tests:
    pip install -e ".[test]"
"""

import sys

from setuptools import setup

APP = ["app.py"]
DATA_FILES = []

MODULES = [
    "app",
    "appconfig",
    "backup",
    "config",
    "dialogs",
    "engines",
    "errors",
    "extensions",
    "fileops",
    "filters",
    "launcher",
    "locks",
    "logsetup",
    "models",
    "payload",
    "profiles",
    "runtimes",
    "status",
    "updates",
    "versions",
    "welcome",
]

OPTIONS = {
    "argv_emulation": False,
    "plist": {
        "LSUIElement": True,           # no Dock icon; the engine owns the app's Dock tile
        "CFBundleName": "Webwrap",
        "CFBundleDisplayName": "Webwrap",
        "CFBundleIdentifier": "org.webwrap.Webwrap",
        "CFBundleShortVersionString": "2.4.3",
        "CFBundleVersion": "2.4.3",
    },
    "packages": [
        "rumps",
        "requests",
        "certifi",       # needed for HTTPS certificate validation
    ],
    "includes": [m for m in MODULES if m != "app"],
}

extra = {}
if "py2app" in sys.argv:
    extra = {
        "app": APP,
        "data_files": DATA_FILES,
        "options": {"py2app": OPTIONS},
        "setup_requires": ["py2app"],
    }

setup(
    name="webwrap",
    version="2.4.3",
    description="Launcher and lifecycle engine for Webwrap site-specific browser apps",
    py_modules=MODULES,
    python_requires=">=3.8",
    install_requires=[
        "requests",
        'rumps; sys_platform == "darwin"',
    ],
    extras_require={
        "test": ["pytest"],
    },
    **extra,
)
