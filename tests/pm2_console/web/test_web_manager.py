import json
from pathlib import Path
from typing import List

import pytest
from fastapi.testclient import TestClient

from pm2_console.command.exceptions import (
    DirectoryUnavailableError,
    ProcessNotFoundError,
    WebInterfaceError,
)
from pm2_console.command.interfaces import ICommandExecutor, IProcessDirectoryClient
from pm2_console.command.models import ActionKind, ActionOutcome, ErrorCode, ProcessRecord
from pm2_console.config import DashboardConfig
from pm2_console.deploy.action_runner import DeploymentActionRunner
from pm2_console.logs.log_reader import LogReader
from pm2_console.service import DashboardService
from pm2_console.web.web_manager import WebManager


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "logs"
    directory.mkdir()
    (directory / "api-out.log").write_text(
        "".join(f"line {i}\n" for i in range(1, 151)), encoding="utf-8"
    )
    return directory


@pytest.fixture
def directory_client(mocker, records: List[ProcessRecord]):
    by_name = {r.name: r for r in records}

    async def get_process(name: str) -> ProcessRecord:
        if name not in by_name:
            raise ProcessNotFoundError(f"Process {name} not found")
        return by_name[name]

    client = mocker.AsyncMock(spec=IProcessDirectoryClient)
    client.list_processes.return_value = records
    client.get_process.side_effect = get_process
    client.apply_lifecycle_action.return_value = ActionOutcome(
        succeeded=True, exit_code=0, stdout="[PM2] Applying action restartProcessId on app [api]"
    )
    return client


@pytest.fixture
def executor(mocker):
    mock = mocker.AsyncMock(spec=ICommandExecutor)
    mock.run.return_value = ActionOutcome(succeeded=True, exit_code=0, stdout="up to date\n")
    return mock


@pytest.fixture
def config(log_dir: Path) -> DashboardConfig:
    return DashboardConfig(log_dir=log_dir)


@pytest.fixture
def web_manager(config, directory_client, executor, log_dir) -> WebManager:
    service = DashboardService(
        directory_client,
        LogReader(log_dir),
        DeploymentActionRunner(directory_client, executor),
    )
    manager = WebManager(config)
    manager.initialize(service)
    return manager


@pytest.fixture
def client(web_manager) -> TestClient:
    return TestClient(web_manager.app)


@pytest.fixture
def web_dir(records) -> Path:
    return Path(next(r.working_directory for r in records if r.name == "web"))


def test_list_processes(client):
    response = client.get("/api/processes")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 3
    api = body["data"][0]
    assert api["name"] == "api"
    assert api["status"] == "online"
    assert api["restart_count"] == 2
    assert api["memory_mb"] == 50
    assert api["working_directory"] is None


def test_list_processes_supervisor_unavailable(client, directory_client):
    directory_client.list_processes.side_effect = DirectoryUnavailableError(
        "Supervisor unavailable: pm2 not found", details="No such file or directory"
    )

    response = client.get("/api/processes")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "DirectoryUnavailable"
    assert body["details"] == "No such file or directory"


def test_process_detail(client, log_dir):
    response = client.get("/api/processes/api")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "api"
    assert data["log_files"] == [
        {"type": "out", "name": "api-out.log", "path": str((log_dir / "api-out.log").absolute())}
    ]


def test_process_detail_not_found(client):
    response = client.get("/api/processes/ghost")

    assert response.status_code == 404
    assert response.json()["error"] == "ProcessNotFound"


def test_get_log_tail(client):
    response = client.get("/api/logs/api/out", params={"lines": 50})

    assert response.status_code == 200
    body = response.json()
    assert body["processName"] == "api"
    assert body["logType"] == "out"
    assert body["fileName"] == "api-out.log"
    assert body["lines"] == 50
    assert body["exists"] is True
    lines = body["content"].splitlines()
    assert len(lines) == 50
    assert lines[0] == "line 101"
    assert lines[-1] == "line 150"


def test_get_log_default_lines(client):
    body = client.get("/api/logs/api/out").json()

    assert body["lines"] == 100
    assert len(body["content"].splitlines()) == 100


def test_get_absent_log(client, log_dir):
    response = client.get("/api/logs/api/error")

    assert response.status_code == 200
    body = response.json()
    assert body["exists"] is False
    assert body["content"] == ""
    assert body["filePath"] == str(log_dir / "api-error.log")


def test_get_log_invalid_type(client):
    assert client.get("/api/logs/api/debug").status_code == 400


@pytest.mark.parametrize("lines", [0, 42, 10000, "abc", "50.0", ""])
def test_get_log_invalid_lines(client, lines):
    response = client.get("/api/logs/api/out", params={"lines": lines})

    assert response.status_code == 400
    assert "Invalid lines" in response.json()["detail"]


@pytest.mark.parametrize("lines", ["abc", "7"])
def test_log_view_page_invalid_lines(client, lines):
    assert client.get("/logs/api/out", params={"lines": lines}).status_code == 400


@pytest.mark.parametrize("action", ["start", "stop", "restart"])
def test_lifecycle_action(client, directory_client, action):
    response = client.post(f"/api/processes/api/{action}")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["action"] == action
    assert body["processName"] == "api"
    directory_client.apply_lifecycle_action.assert_awaited_once_with("api", ActionKind(action))


@pytest.mark.parametrize("action", ["explode", "build", "pull_source"])
def test_lifecycle_invalid_action(client, directory_client, action):
    response = client.post(f"/api/processes/api/{action}")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "InvalidAction"
    assert body["message"] == "Invalid action. Use start, stop, or restart."
    directory_client.apply_lifecycle_action.assert_not_awaited()


def test_lifecycle_unknown_process(client, directory_client):
    directory_client.apply_lifecycle_action.return_value = ActionOutcome(
        succeeded=False, exit_code=1, stderr="[PM2][ERROR] Process or Namespace ghost not found",
        error_code=ErrorCode.UNKNOWN_PROCESS, error_message="Process ghost is not known to the supervisor",
    )

    response = client.post("/api/processes/ghost/restart")

    assert response.status_code == 404
    assert response.json()["error"] == "UnknownProcess"


def test_lifecycle_command_failure_is_200(client, directory_client):
    directory_client.apply_lifecycle_action.return_value = ActionOutcome(
        succeeded=False, exit_code=1, stderr="EPERM",
        error_code=ErrorCode.COMMAND_FAILED, error_message="Command 'pm2 stop api' exited with code 1",
    )

    response = client.post("/api/processes/api/stop")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "CommandFailed"
    assert body["details"] == "EPERM"


def test_git_pull_without_working_directory(client, executor):
    response = client.post("/api/git-pull/api")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "NoWorkingDirectory"
    assert body["message"] == "No working directory found for process api"
    executor.run.assert_not_awaited()


def test_deployment_missing_directory(client, executor):
    response = client.post("/api/npm-build/worker")

    assert response.status_code == 400
    assert response.json()["error"] == "DirectoryMissing"
    executor.run.assert_not_awaited()


def test_deployment_unknown_process(client):
    response = client.post("/api/npm-deploy/ghost")

    assert response.status_code == 404
    assert response.json()["error"] == "ProcessNotFound"


def test_npm_install(client, executor, web_dir):
    (web_dir / "package.json").write_text(json.dumps({"name": "web"}))

    response = client.post("/api/npm-install/web")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["action"] == "install_dependencies"
    assert body["output"] == "up to date\n"
    assert body["workingDirectory"] == str(web_dir)
    executor.run.assert_awaited_once_with(["npm", "install"], directory=str(web_dir), timeout=300)


def test_npm_build_script_missing(client, web_dir):
    (web_dir / "package.json").write_text(json.dumps({"scripts": {"start": "node ."}}))

    response = client.post("/api/npm-build/web")

    assert response.status_code == 400
    assert response.json()["error"] == "ScriptMissing"


def test_npm_deploy_timeout_is_200(client, executor, web_dir):
    (web_dir / "package.json").write_text(json.dumps({"scripts": {"deploy": "./ship"}}))
    executor.run.return_value = ActionOutcome(
        succeeded=False, stdout="> deploy\n", error_code=ErrorCode.COMMAND_TIMED_OUT,
        error_message="Command 'npm run deploy' timed out after 900 seconds",
    )

    response = client.post("/api/npm-deploy/web")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "CommandTimedOut"
    assert body["output"] == "> deploy\n"


def test_index_page(client):
    response = client.get("/")

    assert response.status_code == 200
    html = response.text
    for name in ("api", "worker", "web"):
        assert f'<div class="process-name">{name}</div>' in html
    assert 'href="/logs/api/out?lines=100"' in html
    assert 'data-url="/api/git-pull/web"' in html


def test_index_page_supervisor_unavailable(client, directory_client):
    directory_client.list_processes.side_effect = DirectoryUnavailableError("Supervisor unavailable")

    response = client.get("/")

    assert response.status_code == 500
    assert "Unable to query the process supervisor" in response.text


def test_log_view_page(client):
    response = client.get("/logs/api/out", params={"lines": 50})

    assert response.status_code == 200
    assert "line 150" in response.text
    assert "line 100\n" not in response.text
    assert '<option value="50" selected>' in response.text


def test_log_view_page_absent_log(client):
    response = client.get("/logs/api/error")

    assert response.status_code == 200
    assert "Log file not found." in response.text


def test_run_requires_initialize(config):
    with pytest.raises(WebInterfaceError):
        WebManager(config).run()


def test_log_view_page_reloads_itself(client):
    response = client.get("/logs/api/out")

    assert response.status_code == 200
    assert "setInterval(function () { window.location.reload(); }, 10000);" in response.text
