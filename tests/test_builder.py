"""Tests for StorageBuilder configuration and environment fallbacks."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from stowage import StorageBuilder, StorageError
from stowage.adapters import FilesystemStorageAdapter, MemoryStorageAdapter
from stowage.adapters.filesystem import default_base_dir
from stowage.errors import ErrorCode, Operation
from stowage.hooks import HookEvent

BASE_URL = "https://cdn.example.com"


class TestImmutability:
    """Builder methods return new builders."""

    def test_with_methods_do_not_mutate(self) -> None:
        base = StorageBuilder()
        configured = base.with_url(BASE_URL).with_path("dev").with_max_file_size(10)

        assert base.base_url is None
        assert base.base_path is None
        assert base.max_file_size is None
        assert configured.base_url == BASE_URL
        assert configured.base_path == "dev"

    def test_branching(self, builder: StorageBuilder) -> None:
        one = builder.add_scope("user", "user/[identifier]")
        two = builder.add_scope("tenant", "tenant/[identifier]")

        assert "user" in one.scopes and "tenant" not in one.scopes
        assert "tenant" in two.scopes and "user" not in two.scopes

    def test_url_and_path_normalized(self) -> None:
        builder = StorageBuilder().with_url("https://cdn.example.com///").with_path("/a/b/")
        assert builder.base_url == BASE_URL
        assert builder.base_path == "a/b"


class TestBuildValidation:
    """Tests for build() failures."""

    def test_missing_url(self, memory_adapter: MemoryStorageAdapter) -> None:
        with pytest.raises(StorageError) as exc_info:
            StorageBuilder().with_adapter(memory_adapter).with_env({}).build()

        assert exc_info.value.code == ErrorCode.MISSING_URL
        assert exc_info.value.operation == Operation.BUILD

    def test_relative_url_rejected(self, memory_adapter: MemoryStorageAdapter) -> None:
        with pytest.raises(StorageError) as exc_info:
            StorageBuilder().with_adapter(memory_adapter).with_url("cdn.example.com").with_env(
                {}
            ).build()
        assert exc_info.value.code == ErrorCode.MISSING_URL

    def test_missing_adapter(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            StorageBuilder().with_url(BASE_URL).with_env({}).build()

        assert exc_info.value.code == ErrorCode.ADAPTER_NOT_CONFIGURED
        assert exc_info.value.operation == Operation.BUILD

    def test_unknown_adapter_key(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            StorageBuilder().with_adapter("s3").with_url(BASE_URL).with_env({}).build()

        assert exc_info.value.code == ErrorCode.ADAPTER_NOT_CONFIGURED
        assert exc_info.value.data["known"] == ["filesystem", "memory"]

    def test_negative_max_file_size(self) -> None:
        with pytest.raises(ValueError):
            StorageBuilder().with_max_file_size(-1)

    def test_bad_adapter_argument(self, memory_adapter: MemoryStorageAdapter) -> None:
        with pytest.raises(TypeError):
            StorageBuilder().with_adapter(42)  # type: ignore[arg-type]
        with pytest.raises(TypeError):
            StorageBuilder().with_adapter(memory_adapter, base_dir="/tmp")

    def test_duplicate_scope(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            StorageBuilder().add_scope("user").add_scope("user")
        assert exc_info.value.code == ErrorCode.INVALID_SCOPE_DEFINITION


class TestEnvironmentFallbacks:
    """Explicit settings win over STOWAGE_* variables."""

    def test_env_url_base_path_and_size(self, memory_adapter: MemoryStorageAdapter) -> None:
        storage = (
            StorageBuilder()
            .with_adapter(memory_adapter)
            .with_env(
                {
                    "STOWAGE_URL": "https://env.example.com/",
                    "STOWAGE_BASE_PATH": "/staging/",
                    "STOWAGE_MAX_FILE_SIZE": "1024",
                }
            )
            .build()
        )

        assert storage.config.base_url == "https://env.example.com"
        assert storage.prefix == "staging"
        assert storage.config.policies.max_file_size == 1024

    def test_explicit_wins(self, memory_adapter: MemoryStorageAdapter) -> None:
        storage = (
            StorageBuilder()
            .with_adapter(memory_adapter)
            .with_url(BASE_URL)
            .with_path("")
            .with_max_file_size(5)
            .with_env(
                {
                    "STOWAGE_URL": "https://env.example.com",
                    "STOWAGE_BASE_PATH": "staging",
                    "STOWAGE_MAX_FILE_SIZE": "1024",
                }
            )
            .build()
        )

        assert storage.config.base_url == BASE_URL
        assert storage.prefix == ""
        assert storage.config.policies.max_file_size == 5

    @pytest.mark.parametrize("raw", ["lots", "-5", "1.5"])
    def test_invalid_env_size_ignored(
        self,
        raw: str,
        memory_adapter: MemoryStorageAdapter,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="stowage.config"):
            storage = (
                StorageBuilder()
                .with_adapter(memory_adapter)
                .with_env({"STOWAGE_URL": BASE_URL, "STOWAGE_MAX_FILE_SIZE": raw})
                .build()
            )

        assert storage.config.policies.max_file_size is None
        assert "STOWAGE_MAX_FILE_SIZE" in caplog.text

    def test_env_memory_adapter(self) -> None:
        storage = (
            StorageBuilder()
            .with_env({"STOWAGE_URL": BASE_URL, "STOWAGE_ADAPTER": "Memory"})
            .build()
        )
        assert isinstance(storage.adapter, MemoryStorageAdapter)

    def test_env_filesystem_adapter(self, tmp_path: Path) -> None:
        storage = (
            StorageBuilder()
            .with_env(
                {
                    "STOWAGE_URL": BASE_URL,
                    "STOWAGE_ADAPTER": "filesystem",
                    "STOWAGE_FILESYSTEM_BASE_DIR": str(tmp_path),
                }
            )
            .build()
        )

        assert isinstance(storage.adapter, FilesystemStorageAdapter)
        assert storage.adapter.base_dir == tmp_path.resolve()

    def test_env_mapping_base_dir_wins_over_os_environ(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("STOWAGE_FILESYSTEM_BASE_DIR", str(tmp_path / "from-os"))
        storage = (
            StorageBuilder()
            .with_env(
                {
                    "STOWAGE_URL": BASE_URL,
                    "STOWAGE_ADAPTER": "filesystem",
                    "STOWAGE_FILESYSTEM_BASE_DIR": str(tmp_path / "from-mapping"),
                }
            )
            .build()
        )

        assert isinstance(storage.adapter, FilesystemStorageAdapter)
        assert storage.adapter.base_dir == (tmp_path / "from-mapping").resolve()

    def test_empty_env_mapping_ignores_os_base_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("STOWAGE_FILESYSTEM_BASE_DIR", str(tmp_path))
        storage = (
            StorageBuilder().with_adapter("filesystem").with_url(BASE_URL).with_env({}).build()
        )

        assert isinstance(storage.adapter, FilesystemStorageAdapter)
        assert storage.adapter.base_dir == default_base_dir().resolve()

    def test_tracing_flag_read_from_env_mapping(
        self, memory_adapter: MemoryStorageAdapter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("STOWAGE_OTEL_ENABLED", "1")
        storage = StorageBuilder().with_adapter(memory_adapter).with_url(BASE_URL).with_env({})

        assert storage.build().config.tracing_enabled is False

        traced = storage.with_env(
            {"STOWAGE_OTEL_ENABLED": "1", "STOWAGE_OTEL_TEST_CAPTURE": "1"}
        ).build()
        assert traced.config.tracing_enabled is True

    def test_os_environ_used_without_with_env(
        self, memory_adapter: MemoryStorageAdapter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("STOWAGE_URL", "https://from-os.example.com")
        storage = StorageBuilder().with_adapter(memory_adapter).build()
        assert storage.config.base_url == "https://from-os.example.com"


class TestAdapterFactories:
    """Tests for keyed adapter resolution."""

    def test_key_with_options(self, tmp_path: Path) -> None:
        storage = (
            StorageBuilder()
            .with_adapter("filesystem", base_dir=tmp_path)
            .with_url(BASE_URL)
            .with_env({})
            .build()
        )

        assert isinstance(storage.adapter, FilesystemStorageAdapter)
        assert storage.adapter.base_dir == tmp_path.resolve()

    def test_custom_factory(self) -> None:
        created: list[MemoryStorageAdapter] = []

        def factory() -> MemoryStorageAdapter:
            adapter = MemoryStorageAdapter()
            created.append(adapter)
            return adapter

        storage = (
            StorageBuilder()
            .with_adapter_factory("Fake", factory)
            .with_env({"STOWAGE_URL": BASE_URL, "STOWAGE_ADAPTER": "fake"})
            .build()
        )

        assert storage.adapter is created[0]

    def test_instance_wins_over_env(self, memory_adapter: MemoryStorageAdapter) -> None:
        storage = (
            StorageBuilder()
            .with_adapter(memory_adapter)
            .with_env({"STOWAGE_URL": BASE_URL, "STOWAGE_ADAPTER": "filesystem"})
            .build()
        )
        assert storage.adapter is memory_adapter


class TestHookShortcuts:
    """The on_* shortcuts register the matching event."""

    def test_shortcuts(self, builder: StorageBuilder) -> None:
        def noop(payload: object) -> None:
            return None

        configured = (
            builder.on_upload_started(noop)
            .on_upload_success(noop)
            .on_delete_started(noop)
            .on_delete_success(noop)
            .on_copy_started(noop)
            .on_copy_success(noop)
            .on_move_started(noop)
            .on_move_success(noop)
        )

        assert len(configured.hooks) == 8
        for event in HookEvent:
            assert configured.hooks.callbacks(event) == (noop,)

    @pytest.mark.asyncio
    async def test_custom_content_type(self, builder: StorageBuilder) -> None:
        storage = builder.with_content_type("model/gltf-binary", "glb").build()

        file = await storage.upload(b"glTF", "scene", content_type="model/gltf-binary")

        assert file.path == "scene.glb"
        assert (await storage.upload(b"glTF", "other.glb")).content_type == "model/gltf-binary"
