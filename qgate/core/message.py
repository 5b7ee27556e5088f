from datetime import datetime
from enum import StrEnum


class M(StrEnum):
    # ── Quality Gate ──
    QRUN = "QRUN"  # validation running
    QPAS = "QPAS"  # validation passed (non-failing status)
    QFAL = "QFAL"  # validation failed or errored
    QVAL = "QVAL"  # individual rule result
    QRPT = "QRPT"  # report summary

    # ── Security Audit ──
    AUDT = "AUDT"  # audit progress
    AISS = "AISS"  # audit issue summary

    # ── System ──
    SINF = "SINF"  # system info
    SWRN = "SWRN"  # system warning
    SERR = "SERR"  # system error
    SCFG = "SCFG"  # config message


_enabled = True


def set_enabled(value: bool) -> None:
    """Turn progress output on or off.

    The CLI disables it for ``--format json`` so stdout carries nothing
    but the JSON document.
    """
    global _enabled
    _enabled = value


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def emit(code: M, message: str, *, truncate: int = 0) -> None:
    if not _enabled:
        return
    if truncate > 0 and len(message) > truncate:
        message = message[:truncate] + f"... [{len(message) - truncate} chars]"
    print(f"{{{code.value}}}{_ts()} {message}", flush=True)
