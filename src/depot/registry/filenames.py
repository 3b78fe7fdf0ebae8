"""Stored file names for uploaded artifacts.

An artifact uploaded as ``setup.exe`` for version ``2.1.0`` is stored as
``setup_2.1.0.exe`` and its record keeps ``setup`` as the original name.
Embedding the version before the extension means the same base file uploaded
under two versions never collides.

The reverse direction (recovering ``setup`` from ``setup_2.1.0.exe``) only
exists for records written before ``originalFileName`` was stored. It is a
plain last-occurrence substring search for ``_{version}``. That is ambiguous
when the stem itself contains ``_{version}`` (``tool_1.0_1.0.zip``) and it
cannot tell a separator from part of a name. Files already on disk follow this
loose format, so the heuristic is kept as-is rather than replaced by stricter
parsing.
"""

from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional


# Characters that show up when UTF-8 bytes were decoded as latin-1
MOJIBAKE_CHARS = {"â", "Ã", "Â", "ð", "ï", "å", "æ", "ç", "è", "é"}


def split_extension(name: str) -> tuple[str, str]:
    """Split off the final ``.``-delimited extension.

    A dot at position 0 does not start an extension (``.bashrc`` has none).

    Returns:
        Tuple of (stem, extension including the dot, or "")
    """
    idx = name.rfind(".")
    if idx <= 0:
        return name, ""
    return name[:idx], name[idx:]


def derive_stored_name(base_name: str, version: str) -> tuple[str, str]:
    """Compute the stored file name for an upload.

    Args:
        base_name: Uploaded file name, already transport-decoded
        version: Version being published

    Returns:
        Tuple of (stored file name, original name to persist)
    """
    stem, ext = split_extension(base_name)
    return f"{stem}_{version}{ext}", stem


def recover_original_name(file_name: Optional[str], version: str) -> Optional[str]:
    """Recover the original name from a stored file name.

    Everything from the last ``_{version}`` onwards is dropped. Returns None
    when the token is absent and the name is unrecoverable.
    """
    if not file_name:
        return None
    idx = file_name.rfind(f"_{version}")
    if idx < 0:
        return None
    return file_name[:idx]


def repair_filename_encoding(name: str) -> str:
    """Undo latin-1 mis-decoding of a UTF-8 file name.

    Multipart parsers that assume latin-1 turn ``更新.exe`` into a string of
    ``æ``-prefixed garbage. The repair only applies when the name looks like
    mojibake and re-encoding round-trips cleanly; otherwise the name is
    returned unchanged.
    """
    if not name or not any(ch in MOJIBAKE_CHARS for ch in name):
        return name
    try:
        repaired = name.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name
    return repaired


def sanitize_base_name(name: str) -> str:
    """Strip directory components from an uploaded file name."""
    # Handle both separators whatever the server OS is
    cleaned = PureWindowsPath(PurePosixPath(name or "").name).name
    if cleaned in ("", ".", ".."):
        return ""
    return cleaned
