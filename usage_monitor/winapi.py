"""
Win32 helpers
=============

Thin ``ctypes`` wrappers for the two OS facilities the cookie reader needs:

* ``CryptUnprotectData`` (DPAPI), which unwraps secrets bound to the current
  Windows user account.
* ``CreateFileW`` with ``FILE_SHARE_READ | FILE_SHARE_WRITE | FILE_SHARE_DELETE``,
  which opens a database the browser keeps open for writing.

On other platforms :func:`unprotect` raises ``OSError`` and
:func:`open_shared_read` falls back to a plain binary open.
"""
from __future__ import annotations

import ctypes
import os
import sys
from pathlib import Path
from typing import BinaryIO

GENERIC_READ = 0x80000000
FILE_SHARE_READ = 0x00000001
FILE_SHARE_WRITE = 0x00000002
FILE_SHARE_DELETE = 0x00000004
OPEN_EXISTING = 3
FILE_ATTRIBUTE_NORMAL = 0x00000080
FILE_FLAG_SEQUENTIAL_SCAN = 0x08000000
INVALID_HANDLE_VALUE = ctypes.c_void_p(-1).value


class DATA_BLOB(ctypes.Structure):
    _fields_ = [('cbData', ctypes.c_ulong), ('pbData', ctypes.POINTER(ctypes.c_char))]


def unprotect(data: bytes) -> bytes:
    """Unwrap a DPAPI blob for the current user.

    Raises
    ------
    OSError
        If DPAPI is unavailable (non-Windows) or refuses the blob.
    """
    if sys.platform != 'win32':
        raise OSError('DPAPI is only available on Windows')

    buffer = ctypes.create_string_buffer(data, len(data))
    blob_in = DATA_BLOB(len(data), ctypes.cast(buffer, ctypes.POINTER(ctypes.c_char)))
    blob_out = DATA_BLOB()
    ok = ctypes.windll.crypt32.CryptUnprotectData(
        ctypes.byref(blob_in), None, None, None, None, 0, ctypes.byref(blob_out),
    )
    if not ok:
        raise ctypes.WinError()

    try:
        return ctypes.string_at(blob_out.pbData, blob_out.cbData)
    finally:
        ctypes.windll.kernel32.LocalFree(blob_out.pbData)


def open_shared_read(path: Path) -> BinaryIO:
    """Open *path* for reading without denying the owner write or delete access."""
    if sys.platform != 'win32':
        return open(path, 'rb')

    import msvcrt

    kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)
    create_file = kernel32.CreateFileW
    create_file.restype = ctypes.c_void_p
    create_file.argtypes = [
        ctypes.c_wchar_p, ctypes.c_ulong, ctypes.c_ulong, ctypes.c_void_p,
        ctypes.c_ulong, ctypes.c_ulong, ctypes.c_void_p,
    ]

    handle = create_file(
        str(path), GENERIC_READ, FILE_SHARE_READ | FILE_SHARE_WRITE | FILE_SHARE_DELETE, None,
        OPEN_EXISTING, FILE_ATTRIBUTE_NORMAL | FILE_FLAG_SEQUENTIAL_SCAN, None,
    )
    if handle is None or handle == INVALID_HANDLE_VALUE:
        raise ctypes.WinError(ctypes.get_last_error())

    fd = msvcrt.open_osfhandle(handle, os.O_RDONLY | os.O_BINARY)
    return os.fdopen(fd, 'rb')
