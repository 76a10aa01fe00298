"""
Desktop platform glue:
  - Foreground usage oracle (foreground window → owning process name)
  - Screen lock detection (poll cycles are skipped while locked)
  - Single instance enforcement (Mutex)

On platforms without a foreground-window API the oracle returns no data and
the monitor simply sees no transitions.
"""

import sys
import time
import ctypes
import threading

import psutil

from .config import log

_MUTEX_NAME = "Global\\PauseMonitor_5c1e"
_TH32CS_SNAPPROCESS = 0x00000002


# ─── Foreground usage oracle ─────────────────────────────────────

def get_foreground_process_name():
    """Return the process name owning the foreground window, or None."""
    if sys.platform != "win32":
        return None
    try:
        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            return None
        pid = ctypes.c_ulong()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        if not pid.value:
            return None
        return psutil.Process(pid.value).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None
    except OSError as e:
        log.debug("Foreground window lookup failed: %s", e)
        return None


class DesktopUsageOracle:
    """
    Usage oracle backed by foreground-window sampling.

    Each query samples the current foreground process and records its
    last-used time, then answers with the newest entry inside the window.
    Process names found in ``aliases`` (matched lowercase) are reported as
    the tracked package id they stand for; others pass through unchanged.
    """

    def __init__(self, sampler=get_foreground_process_name, clock=time.time, aliases=None):
        self._sampler = sampler
        self._clock = clock
        self._aliases = {k.lower(): v for k, v in (aliases or {}).items()}
        self._last_used = {}
        self._lock = threading.Lock()

    def _resolve(self, name):
        if not name:
            return None
        return self._aliases.get(name.lower(), name)

    def query(self, window_sec, now=None):
        now = self._clock() if now is None else now
        name = self._resolve(self._sampler())
        with self._lock:
            if name:
                self._last_used[name] = now
            recent = [(pkg, ts) for pkg, ts in self._last_used.items() if now - ts <= window_sec]
            # Entries far outside any window are dead weight
            for pkg, ts in list(self._last_used.items()):
                if now - ts > 3600:
                    del self._last_used[pkg]
        if not recent:
            return None
        return max(recent, key=lambda item: item[1])


# ─── Screen lock detection ───────────────────────────────────────

class _PROCESSENTRY32W(ctypes.Structure):
    _fields_ = [
        ("dwSize",              ctypes.c_ulong),
        ("cntUsage",            ctypes.c_ulong),
        ("th32ProcessID",       ctypes.c_ulong),
        ("th32DefaultHeapID",   ctypes.c_size_t),
        ("th32ModuleID",        ctypes.c_ulong),
        ("cntThreads",          ctypes.c_ulong),
        ("th32ParentProcessID", ctypes.c_ulong),
        ("pcPriClassBase",      ctypes.c_long),
        ("dwFlags",             ctypes.c_ulong),
        ("szExeFile",           ctypes.c_wchar * 260),
    ]


def _is_logonui_running():
    """LogonUI.exe only runs while the workstation is locked."""
    kernel32 = ctypes.windll.kernel32
    snapshot = kernel32.CreateToolhelp32Snapshot(_TH32CS_SNAPPROCESS, 0)
    if snapshot in (0, -1):
        return False
    try:
        pe = _PROCESSENTRY32W()
        pe.dwSize = ctypes.sizeof(pe)
        ok = kernel32.Process32FirstW(snapshot, ctypes.byref(pe))
        while ok:
            if pe.szExeFile.lower() == "logonui.exe":
                return True
            ok = kernel32.Process32NextW(snapshot, ctypes.byref(pe))
        return False
    finally:
        kernel32.CloseHandle(snapshot)


def is_system_locked():
    """True while the screen is locked (Windows only; False elsewhere)."""
    if sys.platform != "win32":
        return False
    try:
        if _is_logonui_running():
            return True
        hDesktop = ctypes.windll.user32.OpenInputDesktop(0, False, 0x0001)
        if hDesktop == 0:
            return True
        ctypes.windll.user32.CloseDesktop(hDesktop)
        return False
    except OSError as e:
        log.debug("Lock detection failed: %s", e)
        return False


# ─── Single Instance Lock ────────────────────────────────────────

_instance_mutex = None


def ensure_single_instance():
    """Prevent multiple monitor processes using a Windows named mutex."""
    global _instance_mutex
    if sys.platform != "win32":
        return True

    try:
        _instance_mutex = ctypes.windll.kernel32.CreateMutexW(None, False, _MUTEX_NAME)
        last_error = ctypes.windll.kernel32.GetLastError()
        if last_error == 183:  # ERROR_ALREADY_EXISTS
            log.info("Another monitor instance is already running.")
            return False
        return True
    except OSError as e:
        log.warning("Single instance check failed: %s", e)
        return True
