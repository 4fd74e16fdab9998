"""Application factory for the XAI Forge training and explanation services."""

from __future__ import annotations

import importlib
import pkgutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

import yaml

from common.logging import configure_level, get_logger

from . import config as config_module

if TYPE_CHECKING:  # pragma: no cover
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import sessionmaker

    from plugins.tabular_xai.backend.datasets import DatasetService
    from plugins.tabular_xai.backend.explanation import ExplanationService
    from plugins.tabular_xai.backend.prediction import PredictionService
    from plugins.tabular_xai.backend.registry import ModelRegistry
    from plugins.tabular_xai.backend.training import TrainingOrchestrator
    from plugins.tabular_xai.core import ModelArtifactStore, XaiSettings

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yml"
PLUGIN_KEY = "tabular_xai"

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class XaiApp:
    """Wired services sharing one database engine and artifact store."""

    config: dict[str, Any]
    engine: "Engine"
    session_factory: "sessionmaker"
    settings: "XaiSettings"
    artifacts: "ModelArtifactStore"
    datasets: "DatasetService"
    registry: "ModelRegistry"
    trainer: "TrainingOrchestrator"
    predictions: "PredictionService"
    explanations: "ExplanationService"
    manifests: list[dict[str, str]] = field(default_factory=list)

    def close(self) -> None:
        self.engine.dispose()


def _load_yaml_config(path: Path = CONFIG_PATH) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _discover_plugins(package: str = "plugins") -> Iterable[str]:
    """Yield import paths for all plugin packages."""

    package_path = Path(__file__).resolve().parent.parent / package
    if not package_path.exists():
        return []
    for module_info in pkgutil.iter_modules([str(package_path)]):
        if module_info.ispkg:
            yield f"{package}.{module_info.name}"


def _load_manifests() -> list[dict[str, str]]:
    manifests: list[dict[str, str]] = []
    for dotted in _discover_plugins():
        module = importlib.import_module(dotted)
        manifest = getattr(module, "manifest", None)
        if manifest:
            manifests.append(manifest)
    manifests.sort(key=lambda item: item["title"].lower())
    return manifests


def _config_from_object(target: dict[str, Any], obj: object) -> None:
    for key in dir(obj):
        if key.isupper():
            target[key] = getattr(obj, key)


def _apply_yaml(target: dict[str, Any], yaml_config: Mapping[str, Any]) -> None:
    site_settings = yaml_config.get("site", {}) or {}
    plugin_settings = yaml_config.get("plugins", {}) or {}
    target["SITE_SETTINGS"] = site_settings
    target["PLUGIN_SETTINGS"] = plugin_settings

    if site_settings.get("log_level"):
        target["LOG_LEVEL"] = str(site_settings["log_level"]).upper()

    tabular = plugin_settings.get(PLUGIN_KEY, {}) or {}
    training = tabular.get("training", {}) or {}
    if "timeout_seconds" in training:
        target["TRAINING_TIMEOUT_SECONDS"] = training["timeout_seconds"]
    target["XAI_SETTINGS"] = tabular.get("xai", {}) or {}
    target["UPLOAD_SETTINGS"] = tabular.get("upload", {}) or {}


def build_config(
    config_name: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    *,
    yaml_path: Path = CONFIG_PATH,
) -> dict[str, Any]:
    """Merge config classes, ``config.yml`` and explicit overrides, in that order."""

    app_config: dict[str, Any] = {}
    _config_from_object(app_config, config_module.BaseConfig)
    _apply_yaml(app_config, _load_yaml_config(yaml_path))
    if config_name:
        config_obj = getattr(config_module, config_name, None)
        if config_obj:
            _config_from_object(app_config, config_obj)
        else:
            LOGGER.warning("Unknown config '%s'; using BaseConfig", config_name)
    if overrides:
        app_config.update(overrides)
    return app_config


def create_app(config_name: str | None = None, *, overrides: Mapping[str, Any] | None = None) -> XaiApp:
    """Create the service container and the database schema."""

    from plugins.tabular_xai.backend.database import build_engine, build_session_factory, init_db
    from plugins.tabular_xai.backend.datasets import DatasetService
    from plugins.tabular_xai.backend.explanation import ExplanationService
    from plugins.tabular_xai.backend.locks import DatasetLockRegistry
    from plugins.tabular_xai.backend.prediction import PredictionService
    from plugins.tabular_xai.backend.registry import ModelRegistry
    from plugins.tabular_xai.backend.training import TrainingOrchestrator
    from plugins.tabular_xai.core import ExplanationEngine, FeatureVectorizer, ModelArtifactStore, load_settings
    from common.validation import UploadLimit

    app_config = build_config(config_name, overrides)
    configure_level(app_config.get("LOG_LEVEL", "INFO"))

    plugin_settings = (app_config.get("PLUGIN_SETTINGS") or {}).get(PLUGIN_KEY, {}) or {}
    artifacts = ModelArtifactStore.from_config(app_config, plugin_settings, base_dir=config_module.BASE_DIR)
    upload_root = Path(app_config["UPLOAD_ROOT"])

    engine = build_engine(app_config["DATABASE_URL"], echo=bool(app_config.get("DATABASE_ECHO")))
    init_db(engine)
    session_factory = build_session_factory(engine)

    settings = load_settings(app_config.get("XAI_SETTINGS"))
    limits = UploadLimit.from_settings(app_config.get("UPLOAD_SETTINGS"))
    locks = DatasetLockRegistry()
    registry = ModelRegistry(session_factory, artifacts)
    datasets = DatasetService(session_factory, upload_root, artifacts, locks=locks, limits=limits)
    trainer = TrainingOrchestrator(
        session_factory,
        datasets,
        registry,
        artifacts,
        locks=locks,
        timeout_seconds=TrainingOrchestrator.timeout_from_settings(
            {"timeout_seconds": app_config.get("TRAINING_TIMEOUT_SECONDS")}
        ),
    )
    predictions = PredictionService(registry, artifacts, FeatureVectorizer())
    explanations = ExplanationService(predictions, ExplanationEngine(settings))

    LOGGER.info("XAI Forge ready (models under %s)", artifacts.root)
    return XaiApp(
        config=app_config,
        engine=engine,
        session_factory=session_factory,
        settings=settings,
        artifacts=artifacts,
        datasets=datasets,
        registry=registry,
        trainer=trainer,
        predictions=predictions,
        explanations=explanations,
        manifests=_load_manifests(),
    )


__all__ = ["XaiApp", "build_config", "create_app"]
