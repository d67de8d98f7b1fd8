# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

import json
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from llm_search import admin_api_main
from llm_search.admin_api import app
from llm_search.config import Config
from llm_search.errors import ProviderUnavailableError, SearchConfigError


def _base_cfg():
    return {
        "enabled": True,
        "host": "127.0.0.1",
        "port": 8765,
        "api_key": None,
        "allowed_ips": ["127.0.0.1", "testclient"],
    }


@pytest.fixture
def admin_client(indexed_repo):
    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api._get_engine", return_value=indexed_repo):
        yield TestClient(app)


def test_admin_api_disabled():
    with patch("llm_search.admin_api._get_admin_cfg") as mock_cfg:
        mock_cfg.return_value = {"enabled": False}
        client = TestClient(app)
        response = client.get("/admin/status")
        assert response.status_code == 503
        assert response.json() == {"error": "admin_disabled"}


def test_admin_api_ip_not_allowed():
    with patch("llm_search.admin_api._get_admin_cfg") as mock_cfg:
        cfg = _base_cfg()
        cfg["allowed_ips"] = ["10.1.1.1"]
        mock_cfg.return_value = cfg
        client = TestClient(app)
        response = client.get("/admin/index/stats")
        assert response.status_code == 403
        assert response.json()["reason"] == "ip_not_allowed"


def test_admin_api_auth_required(indexed_repo):
    with patch("llm_search.admin_api._get_admin_cfg") as mock_cfg, \
            patch("llm_search.admin_api._get_engine", return_value=indexed_repo):
        cfg = _base_cfg()
        cfg["api_key"] = "secret"
        mock_cfg.return_value = cfg
        client = TestClient(app)

        # No key
        response = client.get("/admin/status")
        assert response.status_code == 401

        # Wrong key
        response = client.get("/admin/status", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 401

        # Correct key
        response = client.get("/admin/status", headers={"X-Admin-Key": "secret"})
        assert response.status_code == 200


def test_admin_status(admin_client, indexed_repo):
    response = admin_client.get("/admin/status")
    assert response.status_code == 200
    data = response.json()
    assert data["admin"]["enabled"] is True
    assert data["search"]["enabled"] is True
    assert data["search"]["provider"] == "fake"
    assert data["search"]["provider_available"] is True
    assert data["search"]["repository_root"] == str(indexed_repo.repo_root)


def test_admin_status_search_disabled():
    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api._get_engine", side_effect=SearchConfigError("search is not enabled")):
        response = TestClient(app).get("/admin/status")
    assert response.status_code == 200
    assert response.json()["search"] == {"enabled": False, "detail": "search is not enabled"}


def test_admin_index_stats(admin_client):
    response = admin_client.get("/admin/index/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["total_files"] == 4
    assert isinstance(data["newest_index"], str)


def test_admin_index_stats_when_disabled():
    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api._get_engine", side_effect=SearchConfigError("off")):
        response = TestClient(app).get("/admin/index/stats")
    assert response.status_code == 503
    assert response.json()["error"] == "search_disabled"


def test_admin_search(admin_client):
    response = admin_client.post("/admin/search", json={"query": "hello world"})
    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "hello world"
    assert len(data["results"]) == 4
    scores = [r["score"] for r in data["results"]]
    assert scores == sorted(scores, reverse=True)
    assert set(data["results"][0]) == {"path", "score", "file_size", "line_count", "preview", "relevance"}


def test_admin_search_requires_query(admin_client):
    response = admin_client.post("/admin/search", json={"q": "x"})
    assert response.status_code == 400


def test_admin_search_provider_down(admin_client, fake_provider):
    fake_provider.available = False
    response = admin_client.post("/admin/search", json={"query": "x"})
    assert response.status_code == 503
    assert response.json()["error"] == "provider_unavailable"


def test_admin_rebuild_and_update(admin_client, test_repo_path):
    response = admin_client.post("/admin/index/rebuild", json={"force": True})
    assert response.status_code == 200
    assert response.json()["indexed_files"] == 4

    (test_repo_path / "utils.py").unlink()
    response = admin_client.post("/admin/index/update")
    assert response.status_code == 200
    assert response.json()["removed_files"] == 1


def test_admin_cleanup(admin_client, test_repo_path):
    (test_repo_path / "main.py").unlink()
    response = admin_client.post("/admin/index/cleanup")
    assert response.status_code == 200
    assert response.json() == {"removed": ["main.py"], "count": 1}


def test_admin_validate(admin_client, test_repo_path):
    response = admin_client.get("/admin/index/validate")
    assert response.json() == {"valid": True, "issue_count": 0, "issues": []}

    (test_repo_path / "README.md").unlink()
    response = admin_client.get("/admin/index/validate")
    data = response.json()
    assert data["valid"] is False
    assert data["issues"] == [{"path": "README.md", "kind": "missing"}]


def test_admin_unexpected_error_is_500():
    class Broken:
        def stats(self):
            raise RuntimeError("disk on fire")

    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api._get_engine", return_value=Broken()):
        response = TestClient(app).get("/admin/index/stats")
    assert response.status_code == 500
    assert response.json()["error"] == "internal_error"


def test_admin_rebuild_provider_error():
    class Down:
        def index_repository(self, force_all=False):
            raise ProviderUnavailableError("ollama not running")

    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api._get_engine", return_value=Down()):
        response = TestClient(app).post("/admin/index/rebuild")
    assert response.status_code == 503


def test_admin_config_view(temp_dir):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({"admin": {"api_key": "secret"}, "search": {"enabled": True}}))
    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api.get_config", return_value=Config(path)):
        response = TestClient(app).get("/admin/config")
    assert response.status_code == 200
    data = response.json()
    assert data["admin"]["api_key"] == "<redacted>"
    assert data["search"]["enabled"] is True


def test_admin_logs_tail(temp_dir):
    log_path = temp_dir / "search.log"
    log_path.write_text("".join(f"line {i}\n" for i in range(10)))
    path = temp_dir / "config.json"
    path.write_text(json.dumps({"server": {"log_file": str(log_path)}}))
    with patch("llm_search.admin_api._get_admin_cfg", return_value=_base_cfg()), \
            patch("llm_search.admin_api.get_config", return_value=Config(path)):
        response = TestClient(app).get("/admin/logs/tail?n=3")
    assert response.status_code == 200
    assert response.json()["lines"] == ["line 7\n", "line 8\n", "line 9\n"]


def test_admin_main_runs_uvicorn_with_configured_address(temp_dir):
    path = temp_dir / "config.json"
    path.write_text(
        json.dumps(
            {
                "server": {"log_level": "DEBUG", "log_file": str(temp_dir / "admin.log")},
                "admin": {"host": "127.0.0.1", "port": 9100},
            }
        )
    )
    with patch("llm_search.admin_api_main.get_config", return_value=Config(path)), \
            patch("llm_search.admin_api_main.configure_logging") as mock_logging, \
            patch("llm_search.admin_api_main.uvicorn.run") as mock_run:
        admin_api_main.main()

    mock_logging.assert_called_once_with("DEBUG", str(temp_dir / "admin.log"))
    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] is app
    assert mock_run.call_args.kwargs == {"host": "127.0.0.1", "port": 9100, "log_level": "debug"}


def test_admin_main_disabled_does_not_start(temp_dir):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({"admin": {"enabled": False}}))
    with patch("llm_search.admin_api_main.get_config", return_value=Config(path)), \
            patch("llm_search.admin_api_main.configure_logging"), \
            patch("llm_search.admin_api_main.uvicorn.run") as mock_run:
        admin_api_main.main()
    mock_run.assert_not_called()
