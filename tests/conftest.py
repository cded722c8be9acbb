"""Shared fixtures for the portfolio app test suite."""

import pytest

import orchestrator
from app import app as flask_app


@pytest.fixture
def client():
    flask_app.config['TESTING'] = True
    with flask_app.test_client() as test_client:
        yield test_client


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload


class FakeProcess:
    """Stands in for the detached local app process."""

    def __init__(self, exit_code=0, wait_raises=None):
        self.returncode = None
        self.exit_code = exit_code
        self.wait_raises = wait_raises
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        if self.wait_raises is not None and not self.terminated:
            raise self.wait_raises
        self.returncode = -15 if self.terminated else self.exit_code
        return self.returncode

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.killed = True


class FakeHost:
    """Records every external command the orchestrator would run."""

    def __init__(self):
        self.missing = set()
        self.fail_on = set()
        self.calls = []
        self.quiet_calls = []
        self.spawns = []
        self.sleeps = []
        self.probes = []
        self.responses = {}
        self.probe_error = None
        self.processes = []
        self.process_factory = FakeProcess
        self.cleanups = 0

    def which(self, tool):
        return None if tool in self.missing else f"/usr/bin/{tool}"

    def run(self, command):
        self.calls.append(list(command))
        return 1 if tuple(command) in self.fail_on else 0

    def run_quiet(self, command):
        self.quiet_calls.append(list(command))
        return 1

    def popen(self, command, *args, **kwargs):
        self.spawns.append(list(command))
        process = self.process_factory()
        self.processes.append(process)
        return process

    def get(self, url, timeout=None):
        self.probes.append(url)
        if self.probe_error is not None:
            raise self.probe_error
        path = url[len(orchestrator.BASE_URL):]
        return self.responses.get(path, FakeResponse(200))


@pytest.fixture
def host(monkeypatch):
    fake = FakeHost()
    real_cleanup = orchestrator.cleanup

    def counting_cleanup(handle):
        fake.cleanups += 1
        real_cleanup(handle)

    monkeypatch.setattr(orchestrator.shutil, 'which', fake.which)
    monkeypatch.setattr(orchestrator, '_run', fake.run)
    monkeypatch.setattr(orchestrator, '_run_quiet', fake.run_quiet)
    monkeypatch.setattr(orchestrator.subprocess, 'Popen', fake.popen)
    monkeypatch.setattr(orchestrator.time, 'sleep', fake.sleeps.append)
    monkeypatch.setattr(orchestrator.requests, 'get', fake.get)
    monkeypatch.setattr(orchestrator.signal, 'signal', lambda *args: None)
    monkeypatch.setattr(orchestrator, 'cleanup', counting_cleanup)
    return fake
