"""Shared fixtures: an in-memory stand-in for the system facade."""

import pytest

from shell_commands import Dispatcher
from shell_session import SessionState
from system_facade import (
    CpuInfo,
    DiskInfo,
    FacadeError,
    MemoryInfo,
    NetworkInfo,
    ProcessInfo,
    SensorReading,
)

GIB = 2 ** 30


class FakeFacade:
    """Deterministic facade recording every mutating call."""

    def __init__(self, processes=None):
        self.killed = []
        self.spawned = []
        self.fail_kill = set()
        self.spawn_error = None
        self.sensor_list = [
            SensorReading("coretemp Package id 0", 48.0, 61.0, 100.0),
            SensorReading("drivetemp SSD", 35.0, 40.0, 70.0),
            SensorReading("drivetemp HDD", 31.0, 33.0, None),
            SensorReading("amdgpu edge", 52.0, 77.0, None),
        ]
        self.disk_list = [
            DiskInfo("/dev/sda1", "/", "ext4", 100 * GIB, 40 * GIB),
            DiskInfo("/dev/sdb1", "/data", "xfs", 3 * 2 ** 20, 2 ** 20),
        ]
        if processes is None:
            processes = [
                ProcessInfo(1, "init", ("/sbin/init",), 0.0, 0.1),
                ProcessInfo(2, "kthreadd", (), 0.0, 0.0),
                ProcessInfo(300, "sshd", ("/usr/sbin/sshd", "-D"), 0.2, 0.4),
                ProcessInfo(301, "bash", ("-bash",), 1.5, 0.2),
                ProcessInfo(302, "bash", ("-bash",), 0.0, 0.2),
            ]
        self.process_list = processes

    def system_name(self): return "Ubuntu"
    def kernel_version(self): return "6.1.0-test"
    def os_version(self): return "22.04"
    def host_name(self): return "testbox"

    def sensors(self): return list(self.sensor_list)
    def disks(self): return list(self.disk_list)

    def cpus(self):
        return [CpuInfo("Test CPU 9000", "GenuineTest", f"cpu{i}", 3200) for i in range(2)]

    def networks(self):
        return [NetworkInfo("lo", 10, 10), NetworkInfo("eth0", 1200, 3400)]

    def memory(self):
        return MemoryInfo(16 * GIB, 4 * GIB, 8 * GIB)

    def processes(self): return list(self.process_list)

    def find_process(self, pid):
        for p in self.process_list:
            if p.pid == pid:
                return p
        return None

    def terminate(self, pid):
        if pid in self.fail_kill or self.find_process(pid) is None:
            raise FacadeError(f"kill {pid}: no such process (pid {pid})")
        self.killed.append(pid)

    def spawn(self, program):
        if self.spawn_error:
            raise FacadeError(self.spawn_error)
        self.spawned.append(program)
        return 4242


@pytest.fixture
def facade():
    return FakeFacade()


@pytest.fixture
def state():
    return SessionState()


@pytest.fixture
def dispatcher(facade):
    return Dispatcher(facade)
