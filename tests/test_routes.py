"""
Tests for niobium.routes module.

Covers:
- Static mount expansion
- Ordering of dynamic and static routes
- First-wins deduplication
- Remote key derivation
"""

from pathlib import Path

import pytest

from niobium.exceptions import RouteDiscoveryError
from niobium.models import StaticMount
from niobium.routes import dedupe_routes, expand_routes, remote_key_for


@pytest.fixture
def assets(tmp_path: Path) -> Path:
    root = tmp_path / "assets"
    (root / "sub").mkdir(parents=True)
    (root / "a.css").write_text("body{}", encoding="utf-8")
    (root / "sub" / "b.js").write_text("1;", encoding="utf-8")
    return root


class TestExpandRoutes:
    def test_mount_yields_every_file(self, assets: Path):
        routes = expand_routes([], [StaticMount("/assets", assets)])
        assert set(routes) == {"/assets/a.css", "/assets/sub/b.js"}

    def test_dynamic_routes_come_first_verbatim(self, assets: Path):
        routes = expand_routes(["/about", "/"], [StaticMount("/assets", assets)])
        assert routes[:2] == ["/about", "/"]
        assert len(routes) == 4

    def test_trailing_slash_on_prefix_is_stripped(self, assets: Path):
        routes = expand_routes([], [StaticMount("/assets/", assets)])
        assert "/assets/a.css" in routes

    def test_root_mount(self, assets: Path):
        routes = expand_routes([], [StaticMount("/", assets)])
        assert set(routes) == {"/a.css", "/sub/b.js"}

    def test_mounts_expand_in_registration_order(self, tmp_path: Path, assets: Path):
        other = tmp_path / "other"
        other.mkdir()
        (other / "z.txt").write_text("z", encoding="utf-8")

        routes = expand_routes([], [StaticMount("/z", other), StaticMount("/assets", assets)])
        assert routes[0] == "/z/z.txt"

    def test_hidden_files_skipped(self, assets: Path):
        (assets / ".DS_Store").write_text("", encoding="utf-8")
        (assets / ".git").mkdir()
        (assets / ".git" / "HEAD").write_text("ref", encoding="utf-8")

        routes = expand_routes([], [StaticMount("/assets", assets)])
        assert all("/." not in r for r in routes)

    def test_empty_directory(self, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        assert expand_routes(["/"], [StaticMount("/e", empty)]) == ["/"]

    def test_missing_directory_raises(self, tmp_path: Path):
        with pytest.raises(RouteDiscoveryError) as exc_info:
            expand_routes([], [StaticMount("/gone", tmp_path / "gone")])
        assert exc_info.value.prefix == "/gone"

    def test_duplicates_are_kept(self, assets: Path):
        routes = expand_routes(["/assets/a.css"], [StaticMount("/assets", assets)])
        assert routes.count("/assets/a.css") == 2


class TestDedupeRoutes:
    def test_first_occurrence_wins(self):
        assert dedupe_routes(["/a", "/b", "/a", "/c", "/b"]) == ["/a", "/b", "/c"]

    def test_logs_dropped_routes(self, caplog):
        with caplog.at_level("WARNING", logger="niobium.routes"):
            dedupe_routes(["/a", "/a"])
        assert "Duplicate route dropped" in caplog.text


class TestRemoteKeyFor:
    @pytest.mark.parametrize(
        ("route", "expected"),
        [
            ("/", "index.html"),
            ("/about", "about"),
            ("/static/logo.png", "static/logo.png"),
            ("/docs/", "docs/"),
        ],
    )
    def test_remote_key(self, route: str, expected: str):
        assert remote_key_for(route) == expected
