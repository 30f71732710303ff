"""Persisted scheduler properties.

Properties live in a single YAML file, read and written with ruamel.yaml so
hand edits and comments survive. Each key is either global, per-app, or both;
reading a key that was never set yields its declared default.
"""

from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from k3s_manager.exceptions import ConfigurationError
from k3s_manager.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PROPERTIES_PATH = Path("/var/lib/k3s-mgr/properties.yml")

GLOBAL_SCOPE = "--global"

# Keys that may be set per app, with their default values
APP_PROPERTIES = {
    "deploy-timeout": "",
    "image-pull-secrets": "",
    "letsencrypt-server": "",
    "namespace": "",
    "rollback-on-failure": "",
}

# Keys that may be set globally, with their default values
GLOBAL_PROPERTIES = {
    "deploy-timeout": "",
    "image-pull-secrets": "",
    "letsencrypt-email-prod": "",
    "letsencrypt-email-stag": "",
    "namespace": "",
    "network-interface": "eth0",
    "rollback-on-failure": "",
    "token": "",
}


def default_for(key: str) -> str:
    """Return the declared default for ``key``."""
    if key in GLOBAL_PROPERTIES:
        return GLOBAL_PROPERTIES[key]
    return APP_PROPERTIES.get(key, "")


class PropertyStore:
    """File-backed key/value store for global and per-app properties."""

    def __init__(self, path: str | Path = DEFAULT_PROPERTIES_PATH):
        """Initialize the store.

        Args:
            path: Path to the YAML properties file
        """
        self.path = Path(path)
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self.yaml.indent(mapping=2, sequence=2, offset=0)

    def _read(self) -> CommentedMap:
        if not self.path.exists():
            return CommentedMap()

        try:
            with open(self.path) as f:
                data = self.yaml.load(f)
        except Exception as e:
            logger.error(f"Failed to read properties file: {e}", exc_info=True)
            raise ConfigurationError(
                f"Failed to read properties file: {self.path}",
                f"The file may have invalid YAML syntax: {e}",
            )

        if data is None:
            return CommentedMap()
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Properties file must contain a mapping: {self.path}",
                "Fix or remove the file and set the properties again",
            )
        return data

    def _write(self, data: CommentedMap) -> None:
        logger.debug(f"Writing properties file: {self.path}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                self.yaml.dump(data, f)
        except OSError as e:
            logger.error(f"Failed to write properties file: {e}")
            raise ConfigurationError(
                f"Failed to write properties file: {self.path}",
                f"{e}\n\nCheck file permissions or try running with appropriate privileges",
            )

    @staticmethod
    def _validate_key(key: str, app: str) -> None:
        if app == GLOBAL_SCOPE:
            if key not in GLOBAL_PROPERTIES:
                raise ConfigurationError(
                    f"Invalid global property: {key}",
                    f"Valid global properties: {', '.join(sorted(GLOBAL_PROPERTIES))}",
                )
        elif key not in APP_PROPERTIES:
            raise ConfigurationError(
                f"Invalid property for app '{app}': {key}",
                f"Valid app properties: {', '.join(sorted(APP_PROPERTIES))}",
            )

    def _section(self, data: dict, app: str) -> dict:
        if app == GLOBAL_SCOPE:
            return data.get("global") or {}
        return (data.get("apps") or {}).get(app) or {}

    def get(self, key: str, app: str = GLOBAL_SCOPE) -> str:
        """Return the value stored for ``key`` in a single scope, or ``""``."""
        value = self._section(self._read(), app).get(key)
        return "" if value is None else str(value)

    def get_global(self, key: str) -> str:
        """Return the global value of ``key``, falling back to its default."""
        return self.get(key) or default_for(key)

    def computed(self, key: str, app: str) -> str:
        """Return the app value, else the global value, else the default."""
        data = self._read()
        value = self._section(data, app).get(key)
        if not value:
            value = self._section(data, GLOBAL_SCOPE).get(key)
        if not value:
            value = default_for(key)
        return str(value)

    def set(self, key: str, value: str, app: str = GLOBAL_SCOPE) -> None:
        """Set ``key`` in a scope; an empty value clears it.

        Raises:
            ConfigurationError: If the key is not valid for the scope or the
                file cannot be written
        """
        self._validate_key(key, app)
        data = self._read()

        if app == GLOBAL_SCOPE:
            if not data.get("global"):
                data["global"] = CommentedMap()
            section = data["global"]
        else:
            if not data.get("apps"):
                data["apps"] = CommentedMap()
            if not data["apps"].get(app):
                data["apps"][app] = CommentedMap()
            section = data["apps"][app]

        if value:
            logger.info(f"Setting {key} for {app}")
            section[key] = value
        else:
            logger.info(f"Clearing {key} for {app}")
            section.pop(key, None)

        self._write(data)

    def apps(self) -> list[str]:
        """Return the apps that have at least one stored property."""
        return sorted((self._read().get("apps") or {}).keys())

    def report(self, app: str) -> dict[str, str]:
        """Return local, global and computed values for every app property."""
        data = self._read()
        local = self._section(data, app)
        global_section = self._section(data, GLOBAL_SCOPE)

        report = {}
        for key in sorted(APP_PROPERTIES):
            report[key] = str(local.get(key) or "")
            report[f"global-{key}"] = str(global_section.get(key) or "")
            report[f"computed-{key}"] = str(
                local.get(key) or global_section.get(key) or default_for(key)
            )
        return report
