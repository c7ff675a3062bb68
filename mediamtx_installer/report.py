from __future__ import annotations

from typing import List, Optional

from colorama import Fore, Style

from .transaction import TransactionHandle, TransactionState

DIVIDER = "=" * 45


def _c(text: str, color: str, enabled: bool) -> str:
    return f"{color}{text}{Style.RESET_ALL}" if enabled else text


def render_summary(handle: TransactionHandle, *, log_path: Optional[str] = None, color: bool = False) -> str:
    """Human-readable run summary, printed once the transaction has finished."""

    target = handle.target
    facts = handle.record
    unit = target.unit_name.rsplit(".service", 1)[0]
    lines: List[str] = [
        "",
        DIVIDER,
        "MediaMTX Installation Summary",
        DIVIDER,
        f"Version:        {target.version}",
        f"Architecture:   {facts.arch or 'unknown'}",
        f"Install Dir:    {target.install_dir}",
        f"Config File:    {target.config_path}",
        f"Log Directory:  {target.log_dir}",
        f"Service User:   {facts.service_user or target.service_user}",
    ]
    if facts.installed_version:
        lines.append(f"Binary Version: {facts.installed_version}")
    if facts.existing_version:
        lines.append(f"Replaced:       {facts.existing_version}")

    lines += ["", "Network Ports:"]
    for name, label in (("rtsp", "RTSP"), ("rtmp", "RTMP"), ("hls", "HLS"), ("webrtc", "WebRTC"), ("metrics", "Metrics")):
        lines.append(f"  {label + ':':<14}{getattr(target.ports, name)}")

    v = facts.verification
    lines += ["", "Integrity:"]
    if v is None:
        lines.append("  Not checked")
    elif v.verified:
        lines.append(f"  sha256 verified ({v.observed})")
    else:
        lines.append(_c(f"  UNVERIFIED: {v.reason}", Fore.YELLOW, color))

    if handle.backups:
        lines += ["", "Backups:"]
        lines += [f"  {b.original} -> {b.backup}" for b in handle.backups]

    if target.dry_run and facts.planned:
        lines += ["", "Planned changes:"]
        lines += [f"  {p}" for p in facts.planned]

    if facts.warnings:
        lines += ["", "Warnings:"]
        lines += [_c(f"  {w}", Fore.YELLOW, color) for w in facts.warnings]

    lines += [
        "",
        "Service Management:",
        f"  Status:       systemctl status {unit}",
        f"  Start:        systemctl start {unit}",
        f"  Stop:         systemctl stop {unit}",
        f"  Restart:      systemctl restart {unit}",
        f"  Logs:         journalctl -u {unit} -f",
        "",
    ]
    if log_path:
        lines += [f"Installer log:  {log_path}", ""]
    if target.dry_run:
        lines += [_c("NOTE: This was a DRY RUN - no changes were made", Fore.CYAN, color), ""]

    lines.append(DIVIDER)
    if handle.state is TransactionState.COMPLETE:
        lines.append(_c("Installation completed successfully!", Fore.GREEN, color))
    else:
        lines.append(_c(f"Installation did not complete ({handle.state.value})", Fore.RED, color))
    lines.append(DIVIDER)
    return "\n".join(lines)


def failure_lines(handle: TransactionHandle, *, log_path: Optional[str] = None) -> List[str]:
    """What the operator needs to hear after a failed run, beyond the error itself."""

    lines: List[str] = []
    if handle.state is TransactionState.ROLLED_BACK:
        if handle.failures:
            lines.append(f"Rollback incomplete, {len(handle.failures)} action(s) failed:")
            lines += [f"  {f.action.describe()}: {f.error}" for f in handle.failures]
        elif handle.record.changes:
            lines.append(f"All {len(handle.record.changes)} change(s) were rolled back")
    if log_path:
        lines.append(f"See the installer log for details: {log_path}")
    return lines
