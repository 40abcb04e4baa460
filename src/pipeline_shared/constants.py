"""Shared constants for the pipeline."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Stage names
# ---------------------------------------------------------------------------
STAGE_INSTALL_BACKEND = "install_backend"
STAGE_INSTALL_FRONTEND = "install_frontend"
STAGE_LINT_FRONTEND = "lint_frontend"
STAGE_TEST_BACKEND = "test_backend"
STAGE_TEST_FRONTEND = "test_frontend"
STAGE_AUDIT = "audit_dependencies"
STAGE_BUILD_FRONTEND = "build_frontend"
STAGE_BUILD_IMAGES = "build_images"
STAGE_VALIDATE_COMPOSE = "validate_compose"
STAGE_INTEGRATION = "integration_test"
STAGE_ARCHIVE = "archive_artifacts"
STAGE_PUSH_IMAGES = "push_images"
STAGE_RELEASE = "release"

ALL_STAGES = [
    STAGE_INSTALL_BACKEND,
    STAGE_INSTALL_FRONTEND,
    STAGE_LINT_FRONTEND,
    STAGE_TEST_BACKEND,
    STAGE_TEST_FRONTEND,
    STAGE_AUDIT,
    STAGE_BUILD_FRONTEND,
    STAGE_BUILD_IMAGES,
    STAGE_VALIDATE_COMPOSE,
    STAGE_INTEGRATION,
    STAGE_ARCHIVE,
    STAGE_PUSH_IMAGES,
    STAGE_RELEASE,
]

STAGE_TITLES: dict[str, str] = {
    STAGE_INSTALL_BACKEND: "Install Backend Dependencies",
    STAGE_INSTALL_FRONTEND: "Install Frontend Dependencies",
    STAGE_LINT_FRONTEND: "Lint Frontend",
    STAGE_TEST_BACKEND: "Test Backend",
    STAGE_TEST_FRONTEND: "Test Frontend",
    STAGE_AUDIT: "Dependency Audit",
    STAGE_BUILD_FRONTEND: "Build Frontend Bundle",
    STAGE_BUILD_IMAGES: "Build Docker Images",
    STAGE_VALIDATE_COMPOSE: "Validate Docker Compose",
    STAGE_INTEGRATION: "Integration Test",
    STAGE_ARCHIVE: "Archive Artifacts",
    STAGE_PUSH_IMAGES: "Push Images",
    STAGE_RELEASE: "Release",
}

# ---------------------------------------------------------------------------
# Services and images
# ---------------------------------------------------------------------------
SERVICE_BACKEND = "backend"
SERVICE_FRONTEND = "frontend"
SERVICE_NGINX = "nginx"
SERVICE_MONGODB = "mongodb"

LATEST_TAG = "latest"
SHORT_SHA_LENGTH = 7

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_SETTLE_SECONDS = 30
DEFAULT_PROBE_TIMEOUT_SECONDS = 10
DEFAULT_HEALTH_URL = "http://localhost:80/api/tutorials"
DEFAULT_RUN_TIMEOUT_MINUTES = 30
DEFAULT_MAX_BUILDS = 10
DEFAULT_PROJECT_NAME = "mean-app"
DEFAULT_DATABASE = "dd_db"
DEFAULT_COLLECTION = "tutorials"
DEFAULT_BACKEND_PORT = 8080

ARCHIVE_NAME_TEMPLATE = "frontend-dist-{build_number}.tar.gz"

# ---------------------------------------------------------------------------
# State persistence
# ---------------------------------------------------------------------------
STATE_DIR = ".pipeline"
BUILDS_DIR = "builds"
RUN_FILE = "run.json"
HISTORY_FILE = "history.json"
