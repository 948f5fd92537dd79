"""
Shared fixtures: throwaway Cargo workspaces on disk and isolated configuration.
"""

import textwrap

import pytest

from cargo_hoist.cli_config import reset_config
from cargo_hoist.error_handling import setup_error_handling
from cargo_hoist.structured_logging import configure_logging


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep user config files and CARGO_HOIST_* variables out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    for key in (
        "CARGO_HOIST_MIN_MEMBERS",
        "CARGO_HOIST_STRATEGY",
        "CARGO_HOIST_DRY_RUN",
        "CARGO_HOIST_MAX_FILE_SIZE_MB",
        "CARGO_HOIST_LOG_LEVEL",
        "CARGO_HOIST_JSON_LOGS",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)

    reset_config()
    configure_logging()
    setup_error_handling()
    yield
    reset_config()


@pytest.fixture
def make_workspace(tmp_path):
    """
    Factory writing a workspace to disk.

    Usage: make_workspace(root_toml, {"crates/a": member_toml, ...}) -> root path
    """

    def _make(root_manifest, members=None, name="ws"):
        root = tmp_path / name
        root.mkdir()
        (root / "Cargo.toml").write_text(textwrap.dedent(root_manifest), encoding="utf-8")
        for member_path, manifest in (members or {}).items():
            directory = root / member_path
            directory.mkdir(parents=True)
            (directory / "Cargo.toml").write_text(
                textwrap.dedent(manifest), encoding="utf-8"
            )
        return root

    return _make


@pytest.fixture
def tonic_workspace(make_workspace):
    """Two members agree on tonic's version but enable different features."""
    return make_workspace(
        """\
        [workspace]
        members = ["crates/a", "crates/b"]
        """,
        {
            "crates/a": """\
            [package]
            name = "a"
            version = "0.1.0"

            [dependencies]
            tonic = { version = "0.8.3", features = ["tls"] }
            """,
            "crates/b": """\
            [package]
            name = "b"
            version = "0.1.0"

            [dependencies]
            tonic = { version = "0.8.3", features = ["tls-roots"] }
            """,
        },
    )


@pytest.fixture
def serde_workspace(make_workspace):
    """Two members disagree on serde's version requirement."""
    return make_workspace(
        """\
        [workspace]
        members = ["crates/a", "crates/b"]
        """,
        {
            "crates/a": """\
            [package]
            name = "a"
            version = "0.1.0"

            [dependencies]
            serde = { version = "1.0" }
            """,
            "crates/b": """\
            [package]
            name = "b"
            version = "0.1.0"

            [dependencies]
            serde = { version = "1.0.100" }
            """,
        },
    )


@pytest.fixture
def mixed_workspace(make_workspace):
    """Workspace exercising globs, path dependencies and every table kind."""
    return make_workspace(
        """\
        # Workspace root
        [workspace]
        members = ["crates/*"]
        exclude = ["crates/ignored"]

        [workspace.dependencies]
        anyhow = "1.0"
        """,
        {
            "shared": """\
            [package]
            name = "shared"
            version = "0.1.0"
            """,
            "crates/app": """\
            [package]
            name = "app"
            version = "0.1.0"

            [dependencies]
            # logging
            log = "0.4"
            shared = { path = "../../shared" }
            anyhow = { workspace = true }

            [dev-dependencies]
            tempfile = "3"

            [target.'cfg(unix)'.dependencies]
            libc = "0.2"
            """,
            "crates/lib": """\
            [package]
            name = "lib"
            version = "0.1.0"

            [dependencies]
            log = { version = "0.4", optional = true }
            shared = { path = "../../shared", features = ["extra"] }

            [build-dependencies]
            cc = "1.0"
            """,
            "crates/ignored": """\
            [package]
            name = "ignored"
            version = "0.1.0"

            [dependencies]
            log = "0.3"
            """,
        },
    )
