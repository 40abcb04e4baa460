"""Docker Compose file generator for the MEAN service graph.

Generates a ``docker-compose.yml`` with MongoDB, the Express backend,
the Angular frontend, and the Nginx reverse proxy on one bridge network,
plus the MongoDB init script the database container runs on first start.

Credentials and connection settings are written as ``${VAR:-default}``
placeholders; the values come from the environment that
``docker compose`` is started with.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from src.pipeline_shared.constants import (
    DEFAULT_BACKEND_PORT,
    DEFAULT_COLLECTION,
    DEFAULT_DATABASE,
    DEFAULT_PROJECT_NAME,
    SERVICE_BACKEND,
    SERVICE_FRONTEND,
    SERVICE_MONGODB,
    SERVICE_NGINX,
)

MONGO_INIT_FILENAME = "mongo-init.js"
NETWORK_NAME = "mean-network"
VOLUME_NAME = "mongo-data"


def render_mongo_init_script(
    database: str = DEFAULT_DATABASE,
    collection: str = DEFAULT_COLLECTION,
    indexed_fields: tuple[str, ...] = ("title", "published"),
) -> str:
    """Return the MongoDB init script that seeds the application database.

    Selects *database*, creates *collection* and an ascending index on each
    of *indexed_fields*.
    """
    lines = [
        "// Initialize MongoDB with default database and collections",
        f"db = db.getSiblingDB('{database}');",
        "",
        f"db.createCollection('{collection}');",
        "",
        "// Create indexes",
    ]
    for name in indexed_fields:
        lines.append(f"db.{collection}.createIndex({{ {name}: 1 }});")
    lines.append("")
    lines.append(
        f"print('Database {database} initialized with {collection} collection');"
    )
    return "\n".join(lines) + "\n"


class ComposeGenerator:
    """Generates the Docker Compose descriptor for the application."""

    def __init__(
        self,
        project_name: str = DEFAULT_PROJECT_NAME,
        mongo_image: str = "mongo:7",
        backend_port: int = DEFAULT_BACKEND_PORT,
        database: str = DEFAULT_DATABASE,
    ) -> None:
        self.project_name = project_name
        self.mongo_image = mongo_image
        self.backend_port = backend_port
        self.database = database

    def build(self) -> dict[str, Any]:
        """Return the compose document as a plain dict."""
        return {
            "services": {
                SERVICE_MONGODB: self._mongodb_service(),
                SERVICE_BACKEND: self._backend_service(),
                SERVICE_FRONTEND: self._frontend_service(),
                SERVICE_NGINX: self._nginx_service(),
            },
            "networks": {
                NETWORK_NAME: {"driver": "bridge"},
            },
            "volumes": {
                VOLUME_NAME: None,
            },
        }

    def generate(self, output_dir: Path | str | None = None) -> str | Path:
        """Generate ``docker-compose.yml`` and the Mongo init script.

        Args:
            output_dir: Directory to write both files into.  When ``None``
                the compose YAML is returned as a string instead.

        Returns:
            Path to the written compose file, or the YAML string.
        """
        yaml_str = yaml.dump(self.build(), default_flow_style=False, sort_keys=False)
        if output_dir is None:
            return yaml_str

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        init_path = output_dir / MONGO_INIT_FILENAME
        init_path.write_text(
            render_mongo_init_script(database=self.database), encoding="utf-8"
        )
        compose_path = output_dir / "docker-compose.yml"
        compose_path.write_text(yaml_str, encoding="utf-8")
        return compose_path

    # ------------------------------------------------------------------
    # Service definitions
    # ------------------------------------------------------------------

    def _mongodb_service(self) -> dict[str, Any]:
        """MongoDB with root credentials and the init script mounted."""
        return {
            "image": self.mongo_image,
            "container_name": f"{self.project_name}-{SERVICE_MONGODB}",
            "environment": {
                "MONGO_INITDB_ROOT_USERNAME": "${MONGO_INITDB_ROOT_USERNAME:-root}",
                "MONGO_INITDB_ROOT_PASSWORD": "${MONGO_INITDB_ROOT_PASSWORD:-changeme}",
                "MONGO_INITDB_DATABASE": f"${{MONGO_INITDB_DATABASE:-{self.database}}}",
            },
            "volumes": [
                f"{VOLUME_NAME}:/data/db",
                f"./{MONGO_INIT_FILENAME}:/docker-entrypoint-initdb.d/{MONGO_INIT_FILENAME}:ro",
            ],
            "networks": [NETWORK_NAME],
            "healthcheck": {
                "test": ["CMD", "mongosh", "--quiet", "--eval", "db.adminCommand('ping')"],
                "interval": "10s",
                "timeout": "5s",
                "retries": 5,
            },
        }

    def _backend_service(self) -> dict[str, Any]:
        """Express API, built from ``./backend``."""
        return {
            "image": f"{SERVICE_BACKEND}:${{BUILD_NUMBER:-latest}}",
            "build": {"context": f"./{SERVICE_BACKEND}", "dockerfile": "Dockerfile"},
            "container_name": f"{self.project_name}-{SERVICE_BACKEND}",
            "environment": {
                "MONGODB_URI": (
                    f"${{MONGODB_URI:-mongodb://{SERVICE_MONGODB}:27017/{self.database}}}"
                ),
                "PORT": f"${{PORT:-{self.backend_port}}}",
            },
            "expose": [str(self.backend_port)],
            "networks": [NETWORK_NAME],
            "depends_on": {
                SERVICE_MONGODB: {"condition": "service_healthy"},
            },
        }

    def _frontend_service(self) -> dict[str, Any]:
        """Angular bundle served by its own container, built from ``./frontend``."""
        return {
            "image": f"{SERVICE_FRONTEND}:${{BUILD_NUMBER:-latest}}",
            "build": {"context": f"./{SERVICE_FRONTEND}", "dockerfile": "Dockerfile"},
            "container_name": f"{self.project_name}-{SERVICE_FRONTEND}",
            "expose": ["80"],
            "networks": [NETWORK_NAME],
            "depends_on": [SERVICE_BACKEND],
        }

    def _nginx_service(self) -> dict[str, Any]:
        """Reverse proxy: ``/api`` to the backend, everything else to the frontend."""
        return {
            "image": f"{SERVICE_NGINX}:${{BUILD_NUMBER:-latest}}",
            "build": {"context": f"./{SERVICE_NGINX}", "dockerfile": "Dockerfile"},
            "container_name": f"{self.project_name}-{SERVICE_NGINX}",
            "ports": ["80:80"],
            "networks": [NETWORK_NAME],
            "depends_on": [SERVICE_BACKEND, SERVICE_FRONTEND],
        }
