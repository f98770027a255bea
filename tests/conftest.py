from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from fimcheck.core.config_loader import build_config


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(site_root: Path, **sections: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "scan": {"root": str(site_root)},
            "checksums": {
                "source": "local",
                "local_path": str(tmp_path / "checksums.json"),
                "url": "https://checksums.test/{version}.json",
            },
            "progress": {"directory": str(tmp_path / "progress")},
            "alerts": {"log_path": str(tmp_path / "logs" / "findings.log")},
            "report": {"path": str(tmp_path / "logs" / "report.txt")},
        }
        for name, values in sections.items():
            raw.setdefault(name, {}).update(values)
        return build_config(raw, tmp_path)

    return _make
