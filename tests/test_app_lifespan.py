from fastapi.testclient import TestClient

import narrator.main as main_module
from narrator.config import settings


def test_create_app_health_endpoint() -> None:
    with TestClient(main_module.create_app()) as client:
        res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_lifespan_checks_schema_in_dev(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(main_module, "ensure_dev_database_schema", lambda url: calls.append(url))

    settings.env = "dev"
    with TestClient(main_module.create_app()) as client:
        assert client.get("/health").status_code == 200
    assert len(calls) == 1

    settings.env = "test"
    with TestClient(main_module.create_app()):
        pass
    assert len(calls) == 1


def test_run_serves_app_with_configured_address(monkeypatch) -> None:
    calls: list[tuple[str, dict]] = []
    monkeypatch.setattr(main_module.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(settings, "server_host", "0.0.0.0")
    monkeypatch.setattr(settings, "server_port", 9010)
    monkeypatch.setattr(settings, "log_level", "DEBUG")

    main_module.run()

    assert calls == [("narrator.main:app", {"host": "0.0.0.0", "port": 9010, "log_level": "debug"})]
