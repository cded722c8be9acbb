# Deployment orchestrator for the DevOps portfolio app
# Sequences prerequisite checks, install, tests, image build, startup and smoke tests
import os
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import requests
import typer
from rich.console import Console
from rich.text import Text

PORT = int(os.getenv('PORT', '3000'))
BASE_URL = f"http://localhost:{PORT}"

IMAGE_TAG = 'devops-portfolio-app'
CONTAINER_NAME = 'devops-portfolio-app'

# runtime, package manager, container engine, compose tool
REQUIRED_TOOLS = ['python3', 'pip', 'docker', 'docker-compose']

INSTALL_COMMAND = ['pip', 'install', '-e', '.[test]']
LINT_COMMAND = ['ruff', 'check', 'src', 'tests']
TEST_COMMAND = ['pytest']
LOCAL_COMMAND = ['python3', 'src/app.py']
BUILD_COMMAND = ['docker', 'build', '-t', IMAGE_TAG, '.']
COMPOSE_UP_COMMAND = ['docker-compose', 'up', '-d']
COMPOSE_DOWN_COMMAND = ['docker-compose', 'down']

# Seconds to wait after a start before the service is assumed to be listening
START_DELAYS = {'local': 3, 'container': 3, 'compose': 5}

# (path, label, message on success), probed in this order
SMOKE_ENDPOINTS = [
    ('/health', 'Health endpoint', 'Health endpoint is working!'),
    ('/', 'Main page', 'Main page is accessible!'),
    ('/api/info', 'API endpoint', 'API endpoint is working!'),
]
SMOKE_TIMEOUT_SECONDS = 5
TERMINATE_GRACE_SECONDS = 5

HELP_ALIASES = ('help', '--help', '-h')

console = Console(soft_wrap=True, highlight=False)


# Console status lines
def _print_line(label, style, message):
    console.print(Text.assemble((f"[{label}]", style), ' ', message))


def print_status(message):
    _print_line('INFO', 'blue', message)


def print_success(message):
    _print_line('SUCCESS', 'green', message)


def print_warning(message):
    _print_line('WARNING', 'yellow', message)


def print_error(message):
    _print_line('ERROR', 'red', message)


# Errors
class OrchestratorError(Exception):
    """Base class for a failed orchestration step."""

    step = 'orchestrator'

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        if step is not None:
            self.step = step


class MissingToolError(OrchestratorError):
    step = 'check-prerequisites'

    def __init__(self, tools: List[str]):
        self.tools = list(tools)
        super().__init__(f"Missing required tools: {' '.join(self.tools)}")


class DependencyInstallError(OrchestratorError):
    step = 'install-dependencies'


class TestFailureError(OrchestratorError):
    step = 'run-tests'


class BuildError(OrchestratorError):
    step = 'build-image'


class StartError(OrchestratorError):
    step = 'start'


class InvalidModeError(OrchestratorError):
    step = 'start'

    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"Invalid mode: {mode}")


class EndpointUnreachableError(OrchestratorError):
    step = 'smoke-test'

    def __init__(self, endpoint: str, reason: str):
        self.endpoint = endpoint
        super().__init__(f"{endpoint} unreachable ({reason})")


class UnknownCommandError(OrchestratorError):
    step = 'dispatch'

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: {command}")


@dataclass
class ServiceHandle:
    """Whatever this invocation started and must stop again on exit."""

    process: Optional[subprocess.Popen] = None
    container: Optional[str] = None
    compose: bool = False

    @property
    def is_empty(self) -> bool:
        return self.process is None and self.container is None and not self.compose

    def release(self):
        """Hand a started container or compose stack over to the operator."""
        self.container = None
        self.compose = False


def _run(command: List[str]) -> int:
    """Run a command in the foreground and return its exit status."""
    try:
        return subprocess.run(command, check=False).returncode
    except OSError:
        return 127


def _run_quiet(command: List[str]) -> int:
    try:
        return subprocess.run(
            command,
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL
        ).returncode
    except OSError:
        return 127


# Steps
def check_prerequisites():
    print_status('Checking prerequisites...')
    missing = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
    if missing:
        raise MissingToolError(missing)
    print_success('All prerequisites are met!')


def install_dependencies():
    print_status('Installing Python dependencies...')
    code = _run(INSTALL_COMMAND)
    if code != 0:
        raise DependencyInstallError(f"'{' '.join(INSTALL_COMMAND)}' exited with {code}")
    print_success('Dependencies installed successfully!')


def run_tests():
    print_status('Running tests...')
    for name, command in (('lint', LINT_COMMAND), ('unit tests', TEST_COMMAND)):
        code = _run(command)
        if code != 0:
            raise TestFailureError(f"{name} failed with exit code {code}")
    print_success('All tests passed!')


def build_image():
    print_status('Building Docker image...')
    code = _run(BUILD_COMMAND)
    if code != 0:
        raise BuildError(f"docker build exited with {code}")
    print_success('Docker image built successfully!')


def start_app(mode: str, handle: ServiceHandle):
    """Start the app in ``local``, ``container`` or ``compose`` mode and record it in ``handle``."""
    if mode not in START_DELAYS:
        raise InvalidModeError(mode)

    if mode == 'local':
        print_status('Starting application locally...')
        try:
            handle.process = subprocess.Popen(LOCAL_COMMAND)
        except OSError as exc:
            raise StartError(f"could not spawn local process: {exc}") from exc
    elif mode == 'container':
        print_status('Starting application with Docker...')
        command = [
            'docker', 'run', '-d',
            '-p', f"{PORT}:{PORT}",
            '-e', f"PORT={PORT}",
            '--name', CONTAINER_NAME,
            IMAGE_TAG,
        ]
        # a failed run can still leave the named container behind
        handle.container = CONTAINER_NAME
        code = _run(command)
        if code != 0:
            raise StartError(f"docker run exited with {code}")
    else:
        print_status('Starting application with Docker Compose...')
        handle.compose = True
        code = _run(COMPOSE_UP_COMMAND)
        if code != 0:
            raise StartError(f"docker-compose up exited with {code}")

    time.sleep(START_DELAYS[mode])


def smoke_test(base_url: str = BASE_URL):
    print_status('Testing application endpoints...')
    for path, label, ok_message in SMOKE_ENDPOINTS:
        try:
            response = requests.get(base_url + path, timeout=SMOKE_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as exc:
            print_error(f"{label} failed!")
            raise EndpointUnreachableError(path, str(exc)) from exc
        if not 200 <= response.status_code < 300:
            print_error(f"{label} failed!")
            raise EndpointUnreachableError(path, f"HTTP {response.status_code}")
        print_success(ok_message)
    print_success('All endpoints are working correctly!')


def _stop_process(process: subprocess.Popen):
    if process.poll() is not None:
        return
    try:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except (subprocess.TimeoutExpired, KeyboardInterrupt):
            process.kill()
            process.wait()
    except OSError:
        pass


def cleanup(handle: ServiceHandle):
    """Stop everything recorded in ``handle``.

    Never raises: a repeated interrupt skips the current action and the
    remaining ones still run.
    """
    if handle.is_empty:
        return
    print_status('Cleaning up...')

    actions = []
    if handle.process is not None:
        actions.append((_stop_process, handle.process))
    # non-zero here just means there was nothing left to stop
    if handle.compose:
        actions.append((_run_quiet, COMPOSE_DOWN_COMMAND))
    if handle.container is not None:
        actions.append((_run_quiet, ['docker', 'stop', handle.container]))
        actions.append((_run_quiet, ['docker', 'rm', handle.container]))

    for action, target in actions:
        try:
            action(target)
        except KeyboardInterrupt:
            print_warning('Interrupt ignored while cleaning up')

    handle.process = None
    handle.release()
    print_success('Cleanup completed!')


# Commands
def cmd_setup(handle):
    check_prerequisites()
    install_dependencies()
    run_tests()
    print_success('Setup completed!')


def cmd_start_local(handle):
    check_prerequisites()
    start_app('local', handle)
    smoke_test()
    print_success(f"Application is running locally at {BASE_URL}")
    console.print('Press Ctrl+C to stop...')
    code = handle.process.wait()
    if code != 0:
        print_warning(f"Application exited with code {code}")


def cmd_start_docker(handle):
    check_prerequisites()
    build_image()
    start_app('container', handle)
    smoke_test()
    handle.release()
    print_success(f"Application is running with Docker at {BASE_URL}")
    console.print(f"To stop: docker stop {CONTAINER_NAME}")


def cmd_start_compose(handle):
    check_prerequisites()
    start_app('compose', handle)
    smoke_test()
    handle.release()
    print_success(f"Application is running with Docker Compose at {BASE_URL}")
    console.print('To stop: docker-compose down')


def cmd_test(handle):
    check_prerequisites()
    install_dependencies()
    run_tests()


def cmd_build(handle):
    check_prerequisites()
    build_image()


def cmd_clean(handle):
    # containers left running by earlier invocations are known by name only
    handle.container = CONTAINER_NAME
    handle.compose = True


def run_full_pipeline(handle):
    print_status('Running full DevOps pipeline...')
    check_prerequisites()
    install_dependencies()
    run_tests()
    build_image()
    start_app('compose', handle)
    smoke_test()
    handle.release()

    print_success('Full pipeline completed successfully!')
    console.print()
    console.print(f"Application is running at: {BASE_URL}")
    console.print(f"Health check: {BASE_URL}/health")
    console.print(f"API info: {BASE_URL}/api/info")
    console.print()
    console.print('To stop the application, run: devops-run clean')


def show_help(handle=None):
    lines = [
        'DevOps Portfolio Project - Setup and Run Script',
        '',
        'Usage: devops-run [COMMAND]',
        '',
        'Commands:',
    ]
    for name, (_, description) in COMMANDS.items():
        lines.append(f"  {name:<14} - {description}")
    lines += [
        '',
        'Examples:',
        '  devops-run setup          # Install dependencies and run tests',
        '  devops-run start-local    # Start the app locally',
        '  devops-run full           # Complete setup and start',
        '',
    ]
    console.print('\n'.join(lines), markup=False)


COMMANDS: Dict[str, Tuple[Callable[[ServiceHandle], None], str]] = {
    'setup': (cmd_setup, 'Install dependencies and run tests'),
    'start-local': (cmd_start_local, 'Start application locally with Python'),
    'start-docker': (cmd_start_docker, 'Start application with Docker'),
    'start-compose': (cmd_start_compose, 'Start application with Docker Compose'),
    'test': (cmd_test, 'Run all tests (lint + unit tests)'),
    'build': (cmd_build, 'Build Docker image'),
    'clean': (cmd_clean, 'Clean up running containers and processes'),
    'full': (run_full_pipeline, 'Run full pipeline (setup + build + test + start)'),
    'help': (show_help, 'Show this help message'),
}


def _dispatch(command: str, handle: ServiceHandle):
    if command in HELP_ALIASES:
        show_help()
        return
    if command not in COMMANDS:
        raise UnknownCommandError(command)
    action, _ = COMMANDS[command]
    action(handle)


def run_command(command: Optional[str]) -> int:
    """Run one catalogue command and return the process exit code.

    Cleanup of whatever the command started happens exactly once, after the
    command succeeded, failed or was interrupted.
    """
    handle = ServiceHandle()
    try:
        _dispatch(command or 'help', handle)
    except UnknownCommandError as exc:
        print_error(str(exc))
        show_help()
        return 1
    except MissingToolError as exc:
        print_error(f"{exc.step}: {exc}")
        console.print('Please install the missing tools and run this script again.')
        return 1
    except OrchestratorError as exc:
        print_error(f"{exc.step}: {exc}")
        return 1
    except KeyboardInterrupt:
        print_warning('Interrupted, stopping...')
        return 130
    finally:
        cleanup(handle)
    return 0


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


cli = typer.Typer(add_completion=False)


# help options are disabled so that --help / -h reach the dispatcher
@cli.command(context_settings={'help_option_names': [], 'ignore_unknown_options': True})
def main(command: Optional[str] = typer.Argument(None, metavar='COMMAND')):
    """DevOps portfolio setup and run script."""
    signal.signal(signal.SIGTERM, _raise_interrupt)
    raise typer.Exit(code=run_command(command))


if __name__ == '__main__':
    cli()
