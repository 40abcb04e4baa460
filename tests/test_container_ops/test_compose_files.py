"""Tests for compose generation and static compose validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from src.container_ops.compose_generator import (
    MONGO_INIT_FILENAME,
    NETWORK_NAME,
    VOLUME_NAME,
    ComposeGenerator,
    render_mongo_init_script,
)
from src.container_ops.compose_validator import ComposeValidator, check_structure
from src.pipeline_controller.exceptions import ComposeValidationError
from tests.conftest import FakeRuntime


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class TestComposeGenerator:
    def test_services(self) -> None:
        doc = ComposeGenerator().build()
        assert list(doc["services"]) == ["mongodb", "backend", "frontend", "nginx"]
        assert doc["networks"] == {NETWORK_NAME: {"driver": "bridge"}}
        assert VOLUME_NAME in doc["volumes"]

    def test_images_follow_build_number(self) -> None:
        services = ComposeGenerator().build()["services"]
        for name in ("backend", "frontend", "nginx"):
            assert services[name]["image"] == f"{name}:${{BUILD_NUMBER:-latest}}"
            assert services[name]["build"]["context"] == f"./{name}"

    def test_mongodb_credentials_are_placeholders(self) -> None:
        env = ComposeGenerator().build()["services"]["mongodb"]["environment"]
        assert env["MONGO_INITDB_ROOT_USERNAME"] == "${MONGO_INITDB_ROOT_USERNAME:-root}"
        assert env["MONGO_INITDB_DATABASE"] == "${MONGO_INITDB_DATABASE:-dd_db}"

    def test_init_script_mounted(self) -> None:
        volumes = ComposeGenerator().build()["services"]["mongodb"]["volumes"]
        assert f"./{MONGO_INIT_FILENAME}:/docker-entrypoint-initdb.d/{MONGO_INIT_FILENAME}:ro" in volumes

    def test_only_nginx_publishes_ports(self) -> None:
        services = ComposeGenerator().build()["services"]
        assert services["nginx"]["ports"] == ["80:80"]
        assert all("ports" not in svc for name, svc in services.items() if name != "nginx")

    def test_generate_string(self) -> None:
        text = ComposeGenerator(project_name="demo").generate()
        assert isinstance(text, str)
        assert yaml.safe_load(text)["services"]["backend"]["container_name"] == "demo-backend"

    def test_generate_files(self, tmp_path: Path) -> None:
        path = ComposeGenerator(database="shop").generate(tmp_path / "out")
        assert path == tmp_path / "out" / "docker-compose.yml"
        init = (tmp_path / "out" / MONGO_INIT_FILENAME).read_text(encoding="utf-8")
        assert "db.getSiblingDB('shop');" in init

    def test_generated_file_passes_structure_check(self) -> None:
        problems, names = check_structure(yaml.safe_load(ComposeGenerator().generate()))
        assert problems == []
        assert names == ["mongodb", "backend", "frontend", "nginx"]


def test_mongo_init_script() -> None:
    script = render_mongo_init_script()
    assert "db = db.getSiblingDB('dd_db');" in script
    assert "db.createCollection('tutorials');" in script
    assert "db.tutorials.createIndex({ title: 1 });" in script
    assert "db.tutorials.createIndex({ published: 1 });" in script
    assert script.rstrip().endswith("print('Database dd_db initialized with tutorials collection');")


# ---------------------------------------------------------------------------
# Structure checks
# ---------------------------------------------------------------------------


class TestCheckStructure:
    def test_not_a_mapping(self) -> None:
        assert check_structure(["a"])[0] == ["top level must be a mapping"]

    def test_empty_services(self) -> None:
        problems, _ = check_structure({"services": {}})
        assert problems == ["'services' must be a non-empty mapping"]

    def test_service_without_image_or_build(self) -> None:
        problems, _ = check_structure({"services": {"api": {"ports": ["80:80"]}}})
        assert problems == ["service 'api' needs 'image' or 'build'"]

    def test_unknown_dependency(self) -> None:
        doc = {"services": {"api": {"image": "api", "depends_on": ["db"]}}}
        assert "depends on unknown service 'db'" in check_structure(doc)[0][0]

    def test_self_dependency(self) -> None:
        doc = {"services": {"api": {"image": "api", "depends_on": {"api": {}}}}}
        assert "depends on itself" in check_structure(doc)[0][0]

    def test_undeclared_network_and_volume(self) -> None:
        doc = {
            "services": {
                "db": {"image": "mongo", "networks": ["back"], "volumes": ["data:/data/db"]},
            }
        }
        problems, _ = check_structure(doc)
        assert "service 'db' uses undeclared network 'back'" in problems
        assert "service 'db' uses undeclared volume 'data'" in problems

    def test_bind_mounts_are_not_volumes(self) -> None:
        doc = {"services": {"db": {"image": "mongo", "volumes": ["./init.js:/init.js", "/tmp:/tmp"]}}}
        assert check_structure(doc)[0] == []

    @pytest.mark.parametrize(
        ("service", "expected"),
        [
            ({"image": "a", "volumes": 5}, "service 'a': 'volumes' must be a list"),
            ({"image": "a", "depends_on": [["b"]]}, "service 'a': 'depends_on' entries must be names, got ['b']"),
            ({"image": "a", "networks": [{"n": 1}]}, "service 'a': 'networks' entries must be names, got {'n': 1}"),
            ({"image": "a", "networks": "back"}, "service 'a': 'networks' must be a list or mapping"),
        ],
    )
    def test_malformed_entries_are_problems(self, service: dict, expected: str) -> None:
        problems, names = check_structure({"services": {"a": service}})
        assert problems == [expected]
        assert names == ["a"]

    def test_non_string_volume_source_ignored(self) -> None:
        doc = {"services": {"db": {"image": "mongo", "volumes": [{"type": "volume", "source": 5}]}}}
        assert check_structure(doc)[0] == []


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class TestComposeValidator:
    @pytest.mark.asyncio
    async def test_valid_file(self, runtime: FakeRuntime, project_dir: Path) -> None:
        result = await ComposeValidator(runtime, "test-app").validate(project_dir / "docker-compose.yml")
        assert result.valid
        assert runtime.ran("config", "--quiet")
        assert not runtime.ran("up")

    @pytest.mark.asyncio
    async def test_idempotent_on_unchanged_file(self, runtime: FakeRuntime, project_dir: Path) -> None:
        validator = ComposeValidator(runtime, "test-app")
        first = await validator.validate(project_dir / "docker-compose.yml")
        second = await validator.validate(project_dir / "docker-compose.yml")
        assert first == second

    @pytest.mark.asyncio
    async def test_idempotent_on_invalid_file(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services:\n  api:\n    depends_on: [db]\n", encoding="utf-8")
        validator = ComposeValidator(runtime, "test-app")
        first = await validator.validate(compose)
        second = await validator.validate(compose)
        assert not first.valid
        assert first == second

    @pytest.mark.asyncio
    async def test_structural_problem_skips_docker(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}\n", encoding="utf-8")
        result = await ComposeValidator(runtime, "test-app").validate(compose)
        assert not result.valid
        assert runtime.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            "services:\n  a:\n    image: a\n    volumes: 5\n",
            "services:\n  a:\n    image: a\n    depends_on: [[b]]\n",
            "services:\n  a:\n    image: a\n    networks: [{n: 1}]\n",
        ],
    )
    async def test_malformed_service_fields_are_invalid(self, runtime: FakeRuntime, tmp_path: Path, body: str) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text(body, encoding="utf-8")
        result = await ComposeValidator(runtime, "test-app").validate(compose)
        assert not result.valid
        assert result.problems[0].startswith("service 'a':")
        assert runtime.calls == []

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: [unclosed\n", encoding="utf-8")
        result = await ComposeValidator(runtime, "test-app").validate(compose)
        assert not result.valid
        assert result.problems[0].startswith("invalid YAML")

    @pytest.mark.asyncio
    async def test_missing_file(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        result = await ComposeValidator(runtime, "test-app").validate(tmp_path / "absent.yml")
        assert not result.valid
        assert "cannot read file" in result.problems[0]

    @pytest.mark.asyncio
    async def test_docker_rejection(self, runtime: FakeRuntime, project_dir: Path) -> None:
        runtime.fail_when("config", "--quiet", stderr="invalid interpolation format")
        result = await ComposeValidator(runtime, "test-app").validate(project_dir / "docker-compose.yml")
        assert not result.valid
        assert "invalid interpolation format" in result.problems[0]

    @pytest.mark.asyncio
    async def test_validate_or_raise(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services:\n  api: {}\n", encoding="utf-8")
        with pytest.raises(ComposeValidationError) as exc_info:
            await ComposeValidator(runtime, "test-app").validate_or_raise(compose)
        assert exc_info.value.problems == ["service 'api' needs 'image' or 'build'"]
