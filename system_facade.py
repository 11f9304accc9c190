"""OS-facing queries and actions used by the shell commands.

Everything that touches the running machine lives here: identity strings,
sensors, disks, CPUs, network counters, memory, processes, and the two
mutating operations (terminate a process, spawn a program). Failures from
the OS layer are re-raised as ``FacadeError`` so callers only have one
exception type to care about.
"""

import logging
import os
import platform
import re
import shutil
import signal
import socket
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

OS_RELEASE = "/etc/os-release"
CPUINFO = "/proc/cpuinfo"


class FacadeError(Exception):
    """A system query or action failed."""


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------

@dataclass
class SensorReading:
    label: str
    temperature: float
    max: float
    critical: Optional[float] = None


@dataclass
class DiskInfo:
    name: str
    mount_point: str
    file_system: str
    total_space: int
    available_space: int


@dataclass
class CpuInfo:
    brand: str
    vendor_id: str
    name: str
    frequency: int


@dataclass
class NetworkInfo:
    name: str
    packets_transmitted: int
    packets_received: int


@dataclass
class MemoryInfo:
    total: int
    used: int
    free: int


@dataclass
class ProcessInfo:
    pid: int
    name: str
    cmdline: Tuple[str, ...] = ()
    cpu_percent: float = 0.0
    memory_percent: float = 0.0

    @property
    def has_cmdline(self) -> bool:
        return bool(self.cmdline)


# -----------------------------------------------------------------------------
# Utilities
# -----------------------------------------------------------------------------

def format_bytes(size):
    if size is None: return "N/A"
    if size < 1024: return f"{size} B"
    for unit, power in (("KB", 1), ("MB", 2), ("GB", 3)):
        if size < 1024 ** (power + 1):
            return f"{size / 1024 ** power:.2f} {unit}"
    return f"{size / 1024 ** 4:.2f} TB"

def _cmd_out(args, timeout=0.5):
    """Run a helper command, returning its stdout or "" on any failure"""
    try:
        res = subprocess.run(args, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True, timeout=timeout)
        return res.stdout or ""
    except (OSError, subprocess.SubprocessError):
        return ""

def _read_os_release(path=None) -> Dict[str, str]:
    data = {}
    path = path or OS_RELEASE
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if "=" in line:
                    k, v = line.split("=", 1)
                    data[k.strip()] = v.strip().strip('"')
    except OSError:
        pass
    return data

def _read_cpuinfo(path=None) -> Dict[str, str]:
    """First value of each key in /proc/cpuinfo (brand and vendor are per package)"""
    data = {}
    path = path or CPUINFO
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            for line in f:
                if ":" not in line:
                    continue
                k, v = line.split(":", 1)
                data.setdefault(k.strip(), re.sub(r"\s+", " ", v.strip()))
    except OSError:
        pass
    return data

@contextmanager
def _guard(action):
    try:
        yield
    except psutil.NoSuchProcess as e:
        raise FacadeError(f"{action}: no such process (pid {e.pid})") from e
    except psutil.AccessDenied as e:
        raise FacadeError(f"{action}: permission denied") from e
    except (psutil.Error, OSError) as e:
        raise FacadeError(f"{action}: {e}") from e


# -----------------------------------------------------------------------------
# Facade
# -----------------------------------------------------------------------------

class SystemFacade:
    """Synchronous access to the local machine through psutil."""

    def __init__(self):
        self._sensor_max: Dict[Tuple[str, int], float] = {}
        self._children: List[subprocess.Popen] = []

    # identity ---------------------------------------------------------------

    def system_name(self) -> str:
        if platform.system() == "Linux":
            name = _read_os_release().get("NAME")
            if name:
                return name
        elif platform.system() == "Darwin":
            return "Darwin"
        return platform.system() or "Unknown"

    def kernel_version(self) -> str:
        return platform.release() or "Unknown"

    def os_version(self) -> str:
        sysname = platform.system()
        if sysname == "Linux":
            info = _read_os_release()
            return info.get("VERSION_ID") or info.get("BUILD_ID") or "rolling"
        if sysname == "Darwin":
            return platform.mac_ver()[0] or "Unknown"
        return platform.version() or "Unknown"

    def host_name(self) -> str:
        with _guard("host name"):
            return socket.gethostname()

    # hardware ---------------------------------------------------------------

    def sensors(self) -> List[SensorReading]:
        read = getattr(psutil, "sensors_temperatures", None)
        if read is None:
            raise FacadeError("sensors: not supported on this platform")
        with _guard("sensors"):
            chips = read()
        readings = []
        for chip, entries in chips.items():
            for i, entry in enumerate(entries):
                if entry.label:
                    label = f"{chip} {entry.label}"
                else:
                    label = f"{chip} #{i + 1}" if len(entries) > 1 else chip
                top = max(self._sensor_max.get((chip, i), entry.current), entry.current)
                self._sensor_max[(chip, i)] = top
                readings.append(SensorReading(label, entry.current, top, entry.critical))
        return readings

    def disks(self) -> List[DiskInfo]:
        out = []
        with _guard("disks"):
            parts = psutil.disk_partitions(all=False)
        for part in parts:
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, FileNotFoundError):
                logger.debug("skipping unreadable mount %s", part.mountpoint)
                continue
            except OSError as e:
                raise FacadeError(f"disk usage for {part.mountpoint}: {e}") from e
            out.append(DiskInfo(part.device, part.mountpoint, part.fstype, usage.total, usage.free))
        return out

    def cpus(self) -> List[CpuInfo]:
        with _guard("cpus"):
            count = psutil.cpu_count(logical=True) or 1
            freqs = psutil.cpu_freq(percpu=True) or []
        brand, vendor = self._cpu_identity()
        out = []
        for i in range(count):
            if freqs:
                mhz = freqs[i].current if i < len(freqs) else freqs[-1].current
            else:
                mhz = 0
            out.append(CpuInfo(brand, vendor, f"cpu{i}", int(mhz)))
        return out

    def _cpu_identity(self):
        sysname = platform.system()
        if sysname == "Linux":
            info = _read_cpuinfo()
            brand = info.get("model name") or info.get("Model") or platform.processor()
            vendor = info.get("vendor_id") or info.get("CPU implementer") or ""
            return brand or "Unknown", vendor or "Unknown"
        if sysname == "Darwin" and shutil.which("sysctl"):
            brand = _cmd_out(["sysctl", "-n", "machdep.cpu.brand_string"]).strip()
            vendor = _cmd_out(["sysctl", "-n", "machdep.cpu.vendor"]).strip()
            return brand or platform.processor() or "Unknown", vendor or "Unknown"
        return platform.processor() or "Unknown", "Unknown"

    def networks(self) -> List[NetworkInfo]:
        with _guard("network"):
            counters = psutil.net_io_counters(pernic=True)
        return [NetworkInfo(nic, c.packets_sent, c.packets_recv) for nic, c in counters.items()]

    def memory(self) -> MemoryInfo:
        with _guard("memory"):
            vm = psutil.virtual_memory()
        return MemoryInfo(vm.total, vm.used, vm.free)

    # processes --------------------------------------------------------------

    def processes(self) -> List[ProcessInfo]:
        self.reap()
        out = []
        with _guard("process list"):
            for proc in psutil.process_iter(["pid", "name", "cmdline", "cpu_percent", "memory_percent"]):
                p = proc.info
                out.append(ProcessInfo(
                    p["pid"],
                    p.get("name") or "",
                    tuple(p.get("cmdline") or ()),
                    p.get("cpu_percent") or 0.0,
                    p.get("memory_percent") or 0.0,
                ))
        return out

    def find_process(self, pid: int) -> Optional[ProcessInfo]:
        try:
            proc = psutil.Process(pid)
            p = proc.as_dict(["pid", "name", "cmdline", "cpu_percent", "memory_percent"], ad_value=None)
        except psutil.NoSuchProcess:
            return None
        except (psutil.Error, OSError) as e:
            raise FacadeError(f"find {pid}: {e}") from e
        return ProcessInfo(
            p["pid"],
            p.get("name") or "",
            tuple(p.get("cmdline") or ()),
            p.get("cpu_percent") or 0.0,
            p.get("memory_percent") or 0.0,
        )

    def terminate(self, pid: int) -> None:
        """Send SIGTERM to ``pid``."""
        if pid <= 0:
            raise FacadeError(f"kill {pid}: refusing to signal a process group")
        with _guard(f"kill {pid}"):
            psutil.Process(pid).send_signal(signal.SIGTERM)
        logger.info("sent SIGTERM to pid %d", pid)

    def reap(self) -> None:
        """Collect spawned children that have exited so they do not linger as zombies."""
        self._children = [c for c in self._children if c.poll() is None]

    def spawn(self, program: str) -> int:
        """Start ``program`` detached from the shell; its output is discarded."""
        self.reap()
        with _guard(f"ignite {program}"):
            child = subprocess.Popen(
                [program],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=(os.name == "posix"),
            )
        self._children.append(child)
        logger.info("spawned %s as pid %d", program, child.pid)
        return child.pid
