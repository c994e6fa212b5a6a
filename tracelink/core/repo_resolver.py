"""Maps error-tracking projects to repository configurations.

Per-project overrides come from ``Settings.projects`` and are built when the
resolver is created. Any other project gets a config built from the global
repository settings the first time it is seen; that config is cached for the
lifetime of the resolver.
"""

import threading

import structlog

from tracelink.config import Settings, get_settings
from tracelink.core.errors import ConfigurationMissingError
from tracelink.core.repo_config import RepoConfig

logger = structlog.get_logger(__name__)


def normalize_project(project: str | None) -> str:
    return (project or "").strip().lower()


class RepoResolver:
    """Resolves a project identifier to its RepoConfig.

    Usage:
        resolver = RepoResolver(settings)
        config = resolver.resolve("android")
        config.branch
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._configs: dict[str, RepoConfig] = {}
        self._invalid: dict[str, ConfigurationMissingError] = {}
        self._lock = threading.Lock()
        self.log = logger.bind(component="repo_resolver")

        self._load_overrides()

    def _load_overrides(self) -> None:
        for name, override in self.settings.projects.items():
            project = normalize_project(name)
            if not project:
                continue
            roots = override.source_roots or self.settings.path_mapping_source_roots
            try:
                config = RepoConfig.build(
                    project,
                    url=override.bitbucket_url,
                    repo_url=override.repo_url,
                    branch=override.branch,
                    source_path=override.source_path,
                    package_root=override.root,
                    source_roots=roots,
                )
            except ConfigurationMissingError as e:
                self.log.error("Invalid project override", project=project, error=str(e))
                self._invalid[project] = e
                continue
            self._configs[project] = config
            self.log.info(
                "Loaded project override",
                project=project,
                workspace=config.workspace,
                repository=config.repository,
                branch=config.branch,
                origin=config.origin.value,
            )

        self.log.info("Repository overrides loaded", count=len(self._configs))

    def _build_default(self, project: str) -> RepoConfig:
        settings = self.settings
        return RepoConfig.build(
            project,
            url=settings.bitbucket_url,
            repo_url=settings.bitbucket_repo_url,
            branch=settings.bitbucket_repo_branch,
            source_path=settings.bitbucket_repo_src_root,
            package_root=settings.project_root,
            source_roots=settings.path_mapping_source_roots,
        )

    def resolve(self, project: str | None) -> RepoConfig:
        """Return the override for ``project`` or a config built from global settings.

        Raises:
            ConfigurationMissingError: If the project id is empty, its override is
                invalid, or no global repository configuration exists.
        """
        key = normalize_project(project)
        if not key:
            raise ConfigurationMissingError(project or "", "no project name provided")

        config = self._configs.get(key)
        if config is not None:
            return config

        if key in self._invalid:
            raise self._invalid[key]

        with self._lock:
            config = self._configs.get(key)
            if config is None:
                config = self._build_default(key)
                self._configs[key] = config
                self.log.debug(
                    "Built default config for project",
                    project=key,
                    origin=config.origin.value,
                )
        return config

    def cached_configs(self) -> dict[str, RepoConfig]:
        with self._lock:
            return dict(self._configs)

    def add_config(self, project: str, config: RepoConfig) -> None:
        key = normalize_project(project)
        with self._lock:
            self._configs[key] = config
            self._invalid.pop(key, None)
        self.log.info("Added config", project=key)

    def clear_cache(self) -> None:
        """Drop lazily built configs and reload the overrides."""
        with self._lock:
            self._configs.clear()
            self._invalid.clear()
        self._load_overrides()
