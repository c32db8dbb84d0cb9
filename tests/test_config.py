import json
from pathlib import Path

import portal.config as config_module
from portal.config import AppConfig, load_config


def test_paths_resolve_relative_to_base_path(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {"storage_root": "data", "database_file": "data/portal.db"},
        base_path=tmp_path,
    )

    assert config.storage_root == (tmp_path / "data").resolve()
    assert config.database_file == (tmp_path / "data" / "portal.db").resolve()
    assert config.storage_root.is_dir()


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "storage/portal.db"},
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".training_portal" / "storage").resolve()
    assert config.storage_root == expected_storage
    assert config.database_file == (expected_storage / "portal.db").resolve()
    assert expected_storage.exists()


def test_load_config_reads_explicit_file(tmp_path: Path) -> None:
    storage = tmp_path / "custom-storage"
    config_file = tmp_path / "portal.json"
    config_file.write_text(
        json.dumps(
            {
                "storage_root": str(storage),
                "database_file": str(storage / "training.db"),
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.storage_root == storage.resolve()
    assert config.database_file.name == "training.db"
