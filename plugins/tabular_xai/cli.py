"""Command line interface for the Tabular XAI plugin."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from app import XaiApp, create_app
from common.errors import AppError, ensure_app_error
from common.logging import get_logger

LOGGER = get_logger(__name__)


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _print_error(error: AppError) -> None:
    print(json.dumps({"error": error.to_dict()}, indent=2, sort_keys=True), file=sys.stderr)


def _parse_pairs(pairs: list[str] | None) -> dict[str, str]:
    values: dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise SystemExit(f"Expected NAME=VALUE, got '{pair}'")
        name, value = pair.split("=", 1)
        values[name.strip()] = value
    return values


def command_datasets(app: XaiApp, args: argparse.Namespace) -> None:
    if args.action == "upload":
        path = Path(args.file)
        record = app.datasets.upload(path.read_bytes(), path.name, args.owner)
        _print(record.to_dict())
    elif args.action == "list":
        _print({"datasets": [item.to_dict() for item in app.datasets.list_datasets(args.owner)]})
    elif args.action == "delete":
        app.datasets.delete(args.dataset_id, args.owner)
        _print({"deleted": args.dataset_id})
    else:  # pragma: no cover - argparse guards
        raise SystemExit(f"Unknown datasets action: {args.action}")


def command_train(app: XaiApp, args: argparse.Namespace) -> None:
    request = {
        "dataset_id": args.dataset_id,
        "model_name": args.name,
        "target_variable": args.target,
        "feature_names": args.features,
        "model_type": args.model_type,
        "params": _parse_pairs(args.param),
    }
    _print(app.trainer.train_model(request, args.owner).to_dict())


def command_models(app: XaiApp, args: argparse.Namespace) -> None:
    if args.action == "list":
        _print({"models": [item.to_dict() for item in app.registry.list_models(args.owner)]})
    elif args.action == "show":
        _print(app.registry.get(args.model_id, args.owner).to_dict())
    elif args.action == "delete":
        app.registry.delete(args.model_id, args.owner)
        _print({"deleted": args.model_id})
    else:  # pragma: no cover - argparse guards
        raise SystemExit(f"Unknown models action: {args.action}")


def command_predict(app: XaiApp, args: argparse.Namespace) -> None:
    _print(app.predictions.predict(args.model_id, _parse_pairs(args.input), args.owner).to_dict())


def command_explain(app: XaiApp, args: argparse.Namespace) -> None:
    _print(app.explanations.explain(args.model_id, _parse_pairs(args.input), args.owner).to_dict())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tabular XAI CLI")
    parser.add_argument("--owner", type=int, default=1, help="Owner id used to scope every lookup")
    parser.add_argument("--config", default=None, help="Config class name (e.g. TestingConfig)")
    parser.add_argument("--database-url", dest="database_url", default=None, help="SQLAlchemy database URL")
    parser.add_argument("--upload-dir", dest="upload_dir", default=None, help="Directory for datasets and models")
    subparsers = parser.add_subparsers(dest="command", required=True)

    datasets_parser = subparsers.add_parser("datasets", help="Dataset utilities")
    datasets_sub = datasets_parser.add_subparsers(dest="action", required=True)
    upload_parser = datasets_sub.add_parser("upload", help="Register a CSV file")
    upload_parser.add_argument("file", help="Path to the CSV file")
    datasets_sub.add_parser("list", help="List your datasets")
    delete_dataset = datasets_sub.add_parser("delete", help="Delete a dataset and its model")
    delete_dataset.add_argument("dataset_id", type=int)
    datasets_parser.set_defaults(func=command_datasets)

    train_parser = subparsers.add_parser("train", help="Train a model on a dataset")
    train_parser.add_argument("--dataset-id", dest="dataset_id", type=int, required=True)
    train_parser.add_argument("--name", required=True, help="Model name")
    train_parser.add_argument("--target", required=True, help="Target column")
    train_parser.add_argument("--features", nargs="+", required=True, help="Feature columns")
    train_parser.add_argument(
        "--type",
        dest="model_type",
        default="CLASSIFICATION",
        type=str.upper,
        choices=["CLASSIFICATION", "REGRESSION"],
        help="Model family",
    )
    train_parser.add_argument("--param", action="append", help="Hyperparameter as NAME=VALUE")
    train_parser.set_defaults(func=command_train)

    models_parser = subparsers.add_parser("models", help="Trained model utilities")
    models_sub = models_parser.add_subparsers(dest="action", required=True)
    models_sub.add_parser("list", help="List your models")
    show_parser = models_sub.add_parser("show", help="Show one model")
    show_parser.add_argument("model_id", type=int)
    delete_model = models_sub.add_parser("delete", help="Delete a model and its artifact")
    delete_model.add_argument("model_id", type=int)
    models_parser.set_defaults(func=command_models)

    for name, func, help_text in (
        ("predict", command_predict, "Predict one row"),
        ("explain", command_explain, "Explain the prediction for one row"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--model-id", dest="model_id", type=int, required=True)
        sub.add_argument("--input", nargs="*", default=[], help="Feature values as NAME=VALUE")
        sub.set_defaults(func=func)

    return parser


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if args.database_url:
        overrides["DATABASE_URL"] = args.database_url
    if args.upload_dir:
        root = Path(args.upload_dir).expanduser()
        overrides["UPLOAD_ROOT"] = root
        overrides["MODEL_STORE"] = {"root": str(root / "models"), "env": "XAI_FORGE_MODEL_STORE"}
    return overrides


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    app = create_app(args.config, overrides=_overrides(args))
    try:
        args.func(app, args)
    except AppError as exc:
        _print_error(exc)
        return 1
    except Exception as exc:
        LOGGER.exception("Unexpected failure in '%s'", args.command)
        _print_error(ensure_app_error(exc, fallback_code="internal_error"))
        return 2
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
