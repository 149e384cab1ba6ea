# common/syslog.py
import socket
from datetime import datetime, timezone

from common.config import (
    SYSLOG_APP,
    SYSLOG_ENABLED,
    SYSLOG_HOST,
    SYSLOG_PORT,
    SYSLOG_FACILITY,
)

# ------------------------------
# UDP socket (reused)
# ------------------------------
_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _get_lan_ip():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def _pri(severity: int):
    # PRI = facility * 8 + severity
    return (SYSLOG_FACILITY * 8) + severity


def _fmt(v):
    if v is None:
        return "-"
    if isinstance(v, tuple) and len(v) == 2:
        return f"{v[0]}:{v[1]}"
    return str(v)


def format_message(*, level, severity, message, relay_id, event=None, addr=None, **extra):
    payload_parts = [
        f"event={_fmt(event)}",
        f"level={level}",
        f"relay_id={relay_id}",
        f'msg="{message}"',
    ]
    if addr is not None:
        payload_parts.append(f"addr={_fmt(addr)}")

    for k in sorted(extra.keys()):
        payload_parts.append(f"{k}={_fmt(extra[k])}")

    # RFC5424 header
    return (
        f"<{_pri(severity)}>1 "
        f"{_ts()} "
        f"{relay_id} "
        f"{SYSLOG_APP} "
        f"- - - "
        f"{' '.join(payload_parts)}"
    )


# ------------------------------
# Core syslog sender
# ------------------------------
def _send_syslog(*, level: str, severity: int, message: str, **fields):
    if not SYSLOG_ENABLED:
        return

    host = SYSLOG_HOST
    if host == "auto":
        host = _get_lan_ip()

    fields.setdefault("relay_id", "relay")
    syslog_msg = format_message(level=level, severity=severity, message=message, **fields)

    try:
        _sock.sendto(
            syslog_msg.encode("utf-8", errors="replace"),
            (host, SYSLOG_PORT),
        )
    except OSError:
        pass


# ------------------------------
# PUBLIC API
# ------------------------------
def LOG_INFO(message: str, **fields):
    _send_syslog(level="INFO", severity=6, message=message, **fields)


def LOG_WARN(message: str, **fields):
    _send_syslog(level="WARN", severity=4, message=message, **fields)


def LOG_ERROR(message: str, **fields):
    _send_syslog(level="ERROR", severity=3, message=message, **fields)
