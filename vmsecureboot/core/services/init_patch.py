"""
Init script patcher — sign modules whenever VMware (re)loads them.

VMware's own init script (``/usr/lib/vmware/scripts/init/vmware``)
recompiles and loads vmmon/vmnet after a VMware update, leaving them
unsigned. We inject a ``vmwareSignModule`` shell helper right before
``vmwareLoadModule()`` and call it ahead of every ``/sbin/modprobe "$1"``
inside that function.

Three independent pieces:
    parse_init_script          text → InitScriptView (detection)
    patch_init_script          InitScriptView → new text (pure)
    ensure_init_script_patched read, decide, write (mutation)

The helper's name doubles as the guard marker: if it appears anywhere
in the script, the script is considered patched and left alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from vmsecureboot.core.errors import PatchAnchorNotFound
from vmsecureboot.core.models.outcomes import PatchState
from vmsecureboot.core.models.system import SetupConfig
from vmsecureboot.core.persistence.files import atomic_write_bytes

logger = logging.getLogger(__name__)

GUARD_MARKER = "vmwareSignModule"
ANCHOR_LINE = "vmwareLoadModule() {"
FUNCTION_END = "}"
LOAD_RE = re.compile(r'/sbin/modprobe\s+"\$1"')
SIGN_CALL = f'{GUARD_MARKER} "$1"'

# Read and written with surrogateescape so non-UTF-8 bytes survive untouched
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"

_HELPER_TEMPLATE = """\
{marker}() {{
   local mod="$1"
   local kver="$(uname -r)"
   local modpath="{module_dir}/${{mod}}.ko"
   local sign="{sign_file}"
   local priv="{private_key}"
   local der="{certificate}"

   [ -f "$modpath" ] || return 0
   [ -x "$sign" ] && [ -f "$priv" ] && [ -f "$der" ] || return 0
   (
      flock -w {lock_timeout} 9 || exit 0
      if ! /sbin/modinfo "$modpath" 2>/dev/null | grep -q '^signer:'; then
         cp -p "$modpath" "$modpath.signing" \\
            && "$sign" {digest} "$priv" "$der" "$modpath.signing" \\
            && mv -f "$modpath.signing" "$modpath"
         rm -f "$modpath.signing"
      fi
      chmod o+rx "{module_dir}" 2>/dev/null
      chmod o+r "{modules_root}"/modules.* 2>/dev/null
   ) 9>"{lock_file}"
}}

"""


@dataclass
class InitScriptView:
    """Structured view of the vendor init script.

    Attributes:
        lines:         Original lines, line endings kept.
        guard_present: The helper is already in the script.
        anchor_index:  Line index of ``vmwareLoadModule() {``, or None.
        load_indices:  Lines inside that function that run modprobe "$1".
    """

    lines: list[str] = field(default_factory=list)
    guard_present: bool = False
    anchor_index: int | None = None
    load_indices: list[int] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.lines)

    @property
    def patched(self) -> bool:
        return self.guard_present


def parse_init_script(text: str) -> InitScriptView:
    """Locate the guard, the anchor function and its modprobe lines."""
    lines = text.splitlines(keepends=True)
    view = InitScriptView(lines=lines, guard_present=GUARD_MARKER in text)

    for i, line in enumerate(lines):
        if line.rstrip() == ANCHOR_LINE:
            view.anchor_index = i
            break

    if view.anchor_index is None:
        return view

    for i in range(view.anchor_index + 1, len(lines)):
        line = lines[i]
        if line.rstrip() == FUNCTION_END:
            break
        if LOAD_RE.search(line):
            view.load_indices.append(i)

    return view


def render_helper(config: SetupConfig) -> str:
    """The shell function injected ahead of ``vmwareLoadModule``.

    Kernel-scoped paths resolve ``$kver`` at run time. Signing runs
    under ``flock`` on the same lock file as ``setup`` and ``autosign``.
    """
    paths = config.paths
    return _HELPER_TEMPLATE.format(
        marker=GUARD_MARKER,
        module_dir=paths.shell_form("module_dir"),
        modules_root=paths.shell_form("modules_root"),
        sign_file=paths.shell_form("sign_file"),
        private_key=paths.shell_form("private_key"),
        certificate=paths.shell_form("certificate"),
        digest=config.digest,
        lock_file=paths.shell_form("lock_file"),
        lock_timeout=f"{config.lock_timeout:g}",
    )


def patch_init_script(view: InitScriptView, config: SetupConfig) -> str:
    """Return the patched script text. Pure: touches no files.

    An already-patched view comes back unchanged.

    Raises:
        PatchAnchorNotFound: If the anchor function or its modprobe
            call is missing. No partial patch is ever produced.
    """
    if view.guard_present:
        return view.text

    if view.anchor_index is None:
        raise PatchAnchorNotFound(
            f"'{ANCHOR_LINE}' not found in the VMware init script",
            hint="The VMware init script layout changed; patch it manually.",
        )
    if not view.load_indices:
        raise PatchAnchorNotFound(
            f"No '/sbin/modprobe \"$1\"' call inside {ANCHOR_LINE.split('(')[0]}()",
            hint="The VMware init script layout changed; patch it manually.",
        )

    loads = set(view.load_indices)
    out: list[str] = []
    for i, line in enumerate(view.lines):
        if i == view.anchor_index:
            out.append(render_helper(config))
        if i in loads:
            indent = line[: len(line) - len(line.lstrip())]
            out.append(f"{indent}{SIGN_CALL}\n")
        out.append(line)
    return "".join(out)


def ensure_init_script_patched(config: SetupConfig) -> PatchState:
    """Patch the vendor init script once.

    Raises:
        PatchAnchorNotFound: If the script is missing or doesn't match
            the expected layout. The file is left byte-for-byte intact.
    """
    path: Path = config.paths.resolve("init_script")
    try:
        text = path.read_bytes().decode(_ENCODING, _ERRORS)
    except FileNotFoundError:
        raise PatchAnchorNotFound(
            f"VMware init script not found: {path}",
            hint="Is VMware Workstation installed?",
        ) from None

    view = parse_init_script(text)
    if view.guard_present:
        logger.info("Init script already patched")
        return PatchState.ALREADY_PATCHED

    patched = patch_init_script(view, config)
    atomic_write_bytes(path, patched.encode(_ENCODING, _ERRORS))
    logger.info(
        "Init script patched (%d modprobe call(s) wrapped)",
        len(view.load_indices),
    )
    return PatchState.PATCHED
