"""Centralized constants for compose project handling."""

# Compose document keys
INCLUDE_KEY = "include"
SERVICES_KEY = "services"
VOLUMES_KEY = "volumes"
SECRETS_KEY = "secrets"
CONFIGS_KEY = "configs"
NETWORKS_KEY = "networks"
NAME_KEY = "name"

# Written in place of an include file that does not exist yet
INCLUDE_PLACEHOLDER_CONTENT = "# This file will be created when you save changes\nservices:\n"

# Progress stream
DEPLOY_EVENT_TYPE = "deploy"
DEPLOY_POLL_INTERVAL = 0.8  # seconds between engine ps calls
DEPLOY_WAIT_TIMEOUT = 120  # seconds a service group may take to become healthy

# Recreate policies understood by the compose engine
RECREATE_DIVERGED = "diverged"
RECREATE_FORCE = "force"
RECREATE_NEVER = "never"

# Default permission bits for files written into project directories
DEFAULT_FILE_PERM = 0o644
DEFAULT_DIR_PERM = 0o755

# Container states and health values reported by compose ps
STATE_RUNNING = "running"
HEALTH_HEALTHY = "healthy"
HEALTH_STARTING = "starting"
HEALTH_UNHEALTHY = "unhealthy"
