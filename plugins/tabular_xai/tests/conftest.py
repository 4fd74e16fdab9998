from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from app import create_app


@pytest.fixture
def xai_app(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("XAI_FORGE_MODEL_STORE", raising=False)
    app = create_app(
        "TestingConfig",
        overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'xai.db'}",
            "UPLOAD_ROOT": tmp_path / "uploads",
            "MODEL_STORE": {"root": str(tmp_path / "models")},
        },
    )
    yield app
    app.close()


@pytest.fixture
def regression_frame() -> pd.DataFrame:
    rng = np.random.default_rng(7)
    age = rng.integers(20, 65, size=50)
    income = rng.integers(20_000, 120_000, size=50)
    target = 0.5 * age + 0.0001 * income + rng.normal(0, 0.5, size=50)
    return pd.DataFrame({"age": age, "income": income, "target": target.round(3)})


@pytest.fixture
def regression_csv(regression_frame: pd.DataFrame) -> bytes:
    return regression_frame.to_csv(index=False).encode()


@pytest.fixture
def classification_frame() -> pd.DataFrame:
    rng = np.random.default_rng(11)
    width = rng.normal(5.0, 1.0, size=60)
    length = rng.normal(10.0, 2.0, size=60)
    species = np.where(width + 0.2 * length > 7.0, "big", "small")
    return pd.DataFrame(
        {"Width_cm": width.round(3), "length": length.round(3), "species": species}
    )


@pytest.fixture
def classification_csv(classification_frame: pd.DataFrame) -> bytes:
    return classification_frame.to_csv(index=False).encode()
