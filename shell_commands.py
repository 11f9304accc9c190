"""Command table and dispatcher for the interactive shell.

Every command is a plain function ``cmd_<name>(args, facade)`` returning the
lines to display. ``ptable`` returns a ``PagedTable`` instead, which the
dispatcher installs as a scrollable view.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Union

from system_facade import FacadeError, ProcessInfo, format_bytes

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Bad arguments or usage; the message is shown to the operator as is."""


@dataclass
class PagedTable:
    header: str
    rows: List[str] = field(default_factory=list)


CommandResult = Union[List[str], PagedTable]


# -----------------------------------------------------------------------------
# Table formatting
# -----------------------------------------------------------------------------

PROC_COLS = [
    ("PID",     8,  'right'),
    ("%CPU",    7,  'right'),
    ("%MEM",    7,  'right'),
    ("COMMAND", 40, 'left'),
]
DISK_COLS = [
    ("Name",            24, 'left'),
    ("Mount Point",     24, 'left'),
    ("Filesystem",      10, 'left'),
    ("Total Space",     16, 'right'),
    ("Available Space", 16, 'right'),
    ("Used Space",      16, 'right'),
]
CPU_COLS = [
    ("Brand",     48, 'left'),
    ("Vendor ID", 14, 'left'),
    ("Name",      8,  'left'),
    ("Frequency", 10, 'right'),
]

def _pad(text, width, align='left'):
    s = "" if text is None else str(text)
    if len(s) > width: return s
    return s.rjust(width) if align == 'right' else s.ljust(width)

def format_row(values, cols, sep=" "):
    return sep.join(_pad(v, w, align) for v, (_hdr, w, align) in zip(values, cols)).rstrip()

def format_header(cols, sep=" "):
    return format_row([hdr for hdr, _w, _a in cols], cols, sep)

def _proc_row(p: ProcessInfo, command=None):
    return format_row([p.pid, f"{p.cpu_percent:.1f}", f"{p.memory_percent:.1f}", command or p.name], PROC_COLS)

def _option(args, usage):
    """The single optional argument, without leading dashes ("" if absent)."""
    if len(args) > 1:
        raise CommandError(f"usage: {usage}")
    return args[0].lstrip("-").lower() if args else ""

def _single(args, usage):
    if len(args) != 1:
        raise CommandError(f"usage: {usage}")
    return args[0]

def _pid(token):
    try:
        pid = int(token)
    except ValueError:
        raise CommandError(f"invalid pid: {token}") from None
    if pid <= 0:
        raise CommandError(f"invalid pid: {token}")
    return pid

def _celsius(value):
    return "N/A" if value is None else f"{value:.1f}°C"


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

HELP_LINES = [
    "find (pid) --> retrieves the info of process with (pid)",
    "ignite (program) --> start new process",
    "ptable / desc --> prints the process table (desc: reverse order)",
    "sysinfo --> retrieves system info",
    "kill (pid/name) --> kill process with (pid/name)",
    "uname --> prints the kernel version",
    "release --> prints the OS version",
    "hostname --> prints the hostname",
    "sensors --> prints the labels of various components with their associated temperatures",
    "df [-k|-m] --> prints the disk filesystem information",
    "hddtemp [max|crit] --> prints the temperature of the internal HDD/SSD",
    "lscpu --> lists the processor information",
    "gputemp [max] --> prints the temperature of the GPU",
    "network --> prints information pertaining to network utilization",
    "memory --> prints information pertaining to memory utilization",
    "clear / help --> clears the output / prints this help",
]

def cmd_help(args, facade):
    return list(HELP_LINES)

def cmd_clear(args, facade):
    return []

def cmd_uname(args, facade):
    return [facade.kernel_version()]

def cmd_release(args, facade):
    return [facade.os_version()]

def cmd_hostname(args, facade):
    return [facade.host_name()]

def cmd_sysinfo(args, facade):
    return [
        f"Name: {facade.system_name()}",
        f"Kernel version: {facade.kernel_version()}",
        f"OS version: {facade.os_version()}",
        f"Host name: {facade.host_name()}",
    ]

def cmd_sensors(args, facade):
    return [
        f"{s.label}: {_celsius(s.temperature)} (max: {_celsius(s.max)}, critical: {_celsius(s.critical)})"
        for s in facade.sensors()
    ]

def _temperatures(facade, match, mode):
    lines = []
    for s in facade.sensors():
        if not match(s.label):
            continue
        value = {"": s.temperature, "max": s.max, "crit": s.critical}[mode]
        lines.append(f"{s.label}: {_celsius(value)}")
    return lines

def cmd_hddtemp(args, facade):
    mode = _option(args, "hddtemp [max|crit]")
    if mode not in ("", "max", "crit"):
        raise CommandError("usage: hddtemp [max|crit]")
    return _temperatures(facade, lambda label: "SSD" in label or "HDD" in label, mode)

def cmd_gputemp(args, facade):
    mode = _option(args, "gputemp [max]")
    if mode not in ("", "max"):
        raise CommandError("usage: gputemp [max]")
    return _temperatures(facade, lambda label: "gpu" in label, mode)

def cmd_df(args, facade):
    unit = _option(args, "df [-k|-m]")[:1]
    scale = 2 ** {"k": 10, "m": 20}.get(unit, 0)
    lines = [format_header(DISK_COLS)]
    for d in facade.disks():
        total = d.total_space // scale
        avail = d.available_space // scale
        lines.append(format_row([d.name, d.mount_point, d.file_system, total, avail, total - avail], DISK_COLS))
    return lines

def cmd_lscpu(args, facade):
    lines = [format_header(CPU_COLS)]
    for c in facade.cpus():
        lines.append(format_row([c.brand, c.vendor_id, c.name, c.frequency], CPU_COLS))
    return lines

def _process_rows(facade):
    return [_proc_row(p) for p in facade.processes() if p.has_cmdline]

def cmd_ptable(args, facade):
    return PagedTable(format_header(PROC_COLS), _process_rows(facade))

def cmd_desc(args, facade):
    rows = _process_rows(facade)
    rows.reverse()
    return [format_header(PROC_COLS)] + rows

def cmd_find(args, facade):
    pid = _pid(_single(args, "find <pid>"))
    p = facade.find_process(pid)
    if p is None:
        return [f"Process not found with PID {pid}"]
    return [
        f"Process with PID {pid} found!: {p.name}",
        format_header(PROC_COLS),
        _proc_row(p, " ".join(p.cmdline)),
    ]

def _kill_one(facade, pid):
    try:
        facade.terminate(pid)
    except FacadeError as e:
        logger.warning("kill %d failed: %s", pid, e)
        return f"Error killing process {pid}: {e}"
    return f"Process {pid} killed successfully."

def cmd_kill(args, facade):
    target = _single(args, "kill <pid|name>")
    try:
        pid = int(target)
    except ValueError:
        pid = None
    if pid is not None:
        return [_kill_one(facade, pid)]
    return [_kill_one(facade, p.pid) for p in facade.processes() if p.name == target]

def cmd_ignite(args, facade):
    program = _single(args, "ignite <program>")
    pid = facade.spawn(program)
    return [f"Started {program} (PID {pid})"]

def cmd_network(args, facade):
    return [
        f"Interface {n.name}: transmitted: {n.packets_transmitted}, received: {n.packets_received}"
        for n in facade.networks()
    ]

def cmd_memory(args, facade):
    m = facade.memory()
    return [
        f"Total Memory: {format_bytes(m.total)}",
        f"Used Memory: {format_bytes(m.used)}",
        f"Free Memory: {format_bytes(m.free)}",
    ]

COMMANDS: Dict[str, Callable[..., CommandResult]] = {
    "uname": cmd_uname,
    "release": cmd_release,
    "hostname": cmd_hostname,
    "sysinfo": cmd_sysinfo,
    "sensors": cmd_sensors,
    "df": cmd_df,
    "hddtemp": cmd_hddtemp,
    "lscpu": cmd_lscpu,
    "gputemp": cmd_gputemp,
    "ptable": cmd_ptable,
    "desc": cmd_desc,
    "find": cmd_find,
    "kill": cmd_kill,
    "ignite": cmd_ignite,
    "network": cmd_network,
    "memory": cmd_memory,
    "clear": cmd_clear,
    "help": cmd_help,
}


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------

class Dispatcher:
    """Routes submitted lines to command handlers and writes the session output."""

    def __init__(self, facade, commands=None):
        self.facade = facade
        self.commands = dict(COMMANDS if commands is None else commands)

    def dispatch(self, state, line: str) -> None:
        parts = line.split()
        state.clear_output()
        if not parts:
            return
        name, args = parts[0], parts[1:]
        handler = self.commands.get(name)
        if handler is None:
            state.set_output([f"command not found: {name}"])
            return

        logger.debug("dispatching %s %s", name, args)
        try:
            result = handler(args, self.facade)
        except CommandError as e:
            state.set_output([str(e)])
            return
        except FacadeError as e:
            logger.warning("%s: %s", name, e)
            state.set_output([f"error: {e}"])
            return
        except Exception as e:
            logger.exception("command %s crashed", name)
            state.set_output([f"error: {name} failed: {e}"])
            return

        if isinstance(result, PagedTable):
            state.start_paging(result.header, result.rows)
        else:
            state.set_output(result)
