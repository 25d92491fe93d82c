from pathlib import Path

from fastapi.testclient import TestClient

from dzakcloud.config import Settings
from dzakcloud.service import create_app


def test_static_site_is_served_next_to_the_api(tmp_path: Path) -> None:
    spa_dir = tmp_path / "dist"
    spa_dir.mkdir()
    (spa_dir / "index.html").write_text("<html><body>DzakCloud</body></html>", encoding="utf-8")
    settings = Settings(
        database_path=tmp_path / "site.sqlite3",
        secret_key="tests-secret",
        spa_dir=spa_dir,
    )

    with TestClient(create_app(settings)) as client:
        index = client.get("/")
        assert index.status_code == 200
        assert "DzakCloud" in index.text

        assert client.get("/api/ping").json() == {"message": "ping"}


def test_client_routes_fall_back_to_index(tmp_path: Path) -> None:
    spa_dir = tmp_path / "dist"
    (spa_dir / "assets").mkdir(parents=True)
    (spa_dir / "index.html").write_text("<html><body>DzakCloud</body></html>", encoding="utf-8")
    (spa_dir / "assets" / "app.js").write_text("console.log('app');", encoding="utf-8")
    settings = Settings(
        database_path=tmp_path / "site.sqlite3",
        secret_key="tests-secret",
        spa_dir=spa_dir,
    )

    with TestClient(create_app(settings)) as client:
        for route in ("/pricing", "/dashboard", "/admin/contacts"):
            page = client.get(route)
            assert page.status_code == 200, route
            assert "DzakCloud" in page.text

        asset = client.get("/assets/app.js")
        assert asset.status_code == 200
        assert "console.log" in asset.text

        unknown = client.get("/api/does-not-exist")
        assert unknown.status_code == 404
        assert unknown.json()["success"] is False
