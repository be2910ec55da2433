"""Webwrap – templated file output.

Every filter reads its source, builds the new text or document in memory
and writes the result through the commit primitive.
"""

import glob
import logging
import os
import plistlib
import re

import fileops
from errors import FileOpError

logger = logging.getLogger(__name__)

# marker for filter_plist: remove this key
DELETE = object()


def filter_text(text, tokens):
    """Replace every occurrence of each token in *tokens* (a mapping)."""
    for token, value in tokens.items():
        text = text.replace(token, value)
    return text


def filter_file(src, dst, tokens, what=None):
    """Write *src* to *dst* with token substitutions applied."""
    what = what or os.path.basename(src)
    try:
        with open(src, encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise FileOpError(f"Unable to filter {what}.") from exc
    fileops.write_text(dst, filter_text(text, tokens), what)


def apply_plist_updates(doc, updates):
    """Set or delete top-level keys. A value of DELETE removes the key."""
    for key, value in updates.items():
        if value is DELETE:
            doc.pop(key, None)
        else:
            doc[key] = value
    return doc


def filter_plist(src, dst, updates, what="property list"):
    """Write *src* to *dst* with top-level plist keys updated."""
    try:
        with open(src, "rb") as fh:
            doc = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError) as exc:
        raise FileOpError(f"Error filtering {what}.") from exc
    fileops.write_plist(dst, apply_plist_updates(doc, updates), what)


# ── Localization strings ─────────────────────────────────────────────────────

def _strings_escape(text):
    return text.replace("\\", "\\\\").replace('"', '\\"')


def filter_strings(text, bundle_name, display_name):
    """Rename the bundle in the text of an ``InfoPlist.strings`` file."""
    name = _strings_escape(bundle_name)
    display = _strings_escape(display_name)
    text = re.sub(
        r'^(CFBundleName *= *").*("; *)$',
        lambda m: m.group(1) + name + m.group(2),
        text, flags=re.MULTILINE,
    )
    return re.sub(
        r'^(CFBundleDisplayName *= *").*("; *)$',
        lambda m: m.group(1) + display + m.group(2),
        text, flags=re.MULTILINE,
    )


def filter_lproj(resources_path, bundle_name, display_name, what="engine"):
    """Rename the bundle in every localization under *resources_path*."""
    for lproj in sorted(glob.glob(os.path.join(resources_path, "*.lproj"))):
        path = os.path.join(lproj, "InfoPlist.strings")
        if not os.path.isfile(path):
            continue
        try:
            with open(path, encoding="utf-8") as fh:
                text = fh.read()
        except (OSError, UnicodeDecodeError) as exc:
            # compiled or UTF-16 strings files are left alone
            logger.debug("Skipping '%s': %s", path, exc)
            continue
        fileops.write_text(
            path,
            filter_strings(text, bundle_name, display_name),
            f"{what} localization strings",
        )
