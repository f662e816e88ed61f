from __future__ import annotations

"""
Unit tests for the External Module Installer.

Verifies:
1. Externals selection against the exclude list (wildcard included).
2. Version resolution: declared, installed-only, dev-only and missing packages.
3. Non-optional peer dependencies are added.
4. Composite manifest synthesis, lockfile rebasing and the install sequence.
5. Auto-install providers stop before installing.
6. A failing script surfaces as SpawnError with its output attached.
"""

import asyncio
import json
import os

import pytest

from bundlepack.core.dependencies.externals import (
    add_modules_to_package_json,
    build_composite_package,
    get_prod_modules,
    pack_external_modules,
    resolve_externals,
)
from bundlepack.core.packagers.npm import NpmPackager
from bundlepack.core.packagers.yarn import YarnPackager
from bundlepack.domain.errors import ConfigurationError, DependencyResolutionError, SpawnError
from bundlepack.domain.models import ExternalModuleSpec, ServiceDefinition


def _specs(*names: str):
    return [ExternalModuleSpec(name=n) for n in names]


def _cfg(mock_config_dict, **overrides):
    cfg = dict(mock_config_dict)
    cfg.update(overrides)
    return cfg


# -----------------------------------------------------------------------------
# Selection & version resolution
# -----------------------------------------------------------------------------
def test_resolve_externals():
    assert [s.name for s in resolve_externals(["a", "b", "a", "aws-sdk"], ["aws-sdk"])] == ["a", "b"]
    assert resolve_externals(["a"], ["*"]) == []


def test_declared_versions(tmp_path, make_manifest):
    manifest = make_manifest(str(tmp_path / "package.json"), {
        "dependencies": {"left-pad": "^1.3.0", "@scope/util": "2.0.0"},
    })

    modules = get_prod_modules(_specs("left-pad", "@scope/util"), manifest, manifest, [])

    assert modules == ["left-pad@^1.3.0", "@scope/util@2.0.0"]


def test_dev_only_dependency_raises(tmp_path, make_manifest):
    manifest = make_manifest(str(tmp_path / "package.json"), {
        "dependencies": {"left-pad": "^1.3.0"},
        "devDependencies": {"lodash": "^4.17.21"},
    })

    with pytest.raises(DependencyResolutionError) as exc_info:
        get_prod_modules(_specs("lodash"), manifest, manifest, [])

    assert exc_info.value.package == "lodash"


def test_tolerated_dev_dependency_is_skipped(tmp_path, make_manifest):
    manifest = make_manifest(str(tmp_path / "package.json"), {
        "dependencies": {"left-pad": "^1.3.0"},
        "devDependencies": {"aws-sdk": "^2.0.0"},
    })

    assert get_prod_modules(_specs("aws-sdk"), manifest, manifest, []) == []


def test_missing_dependency_is_skipped(tmp_path, make_manifest):
    manifest = make_manifest(str(tmp_path / "package.json"), {"dependencies": {"left-pad": "^1.3.0"}})

    assert get_prod_modules(_specs("ghost", "left-pad"), manifest, manifest, []) == ["left-pad@^1.3.0"]


def test_required_peers_are_added(tmp_path, make_manifest):
    manifest = make_manifest(str(tmp_path / "package.json"), {"dependencies": {"react-dom": "^18.2.0"}})
    make_manifest(str(tmp_path / "node_modules" / "react-dom" / "package.json"), {
        "version": "18.2.0",
        "peerDependencies": {"react": "^18.2.0", "scheduler-devtools": "*", "aws-sdk": "*"},
        "peerDependenciesMeta": {"scheduler-devtools": {"optional": True}},
    })
    make_manifest(str(tmp_path / "node_modules" / "react" / "package.json"), {"version": "18.2.0"})

    modules = get_prod_modules(_specs("react-dom"), manifest, manifest, ["aws-sdk"])

    assert modules == ["react-dom@^18.2.0", "react@18.2.0"]


# -----------------------------------------------------------------------------
# Manifest synthesis
# -----------------------------------------------------------------------------
def test_build_composite_package():
    package = build_composite_package("svc", ["echo one", "echo two"], {"resolutions": {"a": "1.0.0"}})

    assert package == {
        "name": "svc",
        "version": "1.0.0",
        "description": "Packaged externals for svc",
        "private": True,
        "scripts": {"script0": "echo one", "script1": "echo two"},
        "resolutions": {"a": "1.0.0"},
    }


def test_add_modules_to_package_json():
    package = add_modules_to_package_json(
        ["@scope/util@2.0.0", "left-pad@^1.3.0", "shared@file:../shared", "bare"],
        {},
        "../..",
    )

    assert package["dependencies"] == {
        "@scope/util": "2.0.0",
        "left-pad": "^1.3.0",
        "shared": "file:../../../shared",
        "bare": "",
    }


# -----------------------------------------------------------------------------
# Full install sequence
# -----------------------------------------------------------------------------
@pytest.fixture
def npm_service(tmp_path, make_manifest, make_file):
    service_dir = tmp_path / "svc"
    make_manifest(str(service_dir / "package.json"), {
        "name": "svc",
        "dependencies": {"left-pad": "^1.3.0", "shared": "file:../shared"},
    })
    make_file(str(service_dir / "package-lock.json"), json.dumps({
        "packages": {"node_modules/shared": {"resolved": "file:../shared"}},
    }))
    build_dir = service_dir / ".esbuild" / ".build"
    build_dir.mkdir(parents=True)
    return ServiceDefinition(name="svc", service_dir=str(service_dir)), str(build_dir)


def test_install_sequence(npm_service, mock_config_dict, executor_factory):
    service, build_dir = npm_service
    executor = executor_factory()
    packager = NpmPackager(executor=executor, platform="linux")
    cfg = _cfg(
        mock_config_dict,
        external=["left-pad", "shared"],
        install_extra_args=["--no-audit"],
        packager_options={"scripts": ["echo built"], "no_install": False, "ignore_lockfile": False},
    )

    modules = asyncio.run(pack_external_modules(service, cfg, build_dir, packager))

    assert modules == ["left-pad@^1.3.0", "shared@file:../shared"]
    with open(os.path.join(build_dir, "package.json"), encoding="utf-8") as f:
        composite = json.load(f)
    assert composite["dependencies"] == {"left-pad": "^1.3.0", "shared": "file:../../../shared"}
    assert composite["scripts"] == {"script0": "echo built"}

    with open(os.path.join(build_dir, "package-lock.json"), encoding="utf-8") as f:
        lock = json.load(f)
    assert lock["packages"]["node_modules/shared"]["resolved"] == "file:../../../shared"

    assert executor.calls == [
        ("npm", ["install", "--no-audit"], build_dir),
        ("npm", ["prune"], build_dir),
        ("npm", ["run", "script0"], build_dir),
    ]


def test_failing_script_propagates_spawn_error(npm_service, mock_config_dict, executor_factory):
    service, build_dir = npm_service
    failure = SpawnError("npm", ["run", "script1"], 2, stdout="building", stderr="tsc: error TS2304")
    executor = executor_factory({"run script1": failure})
    packager = NpmPackager(executor=executor, platform="linux")
    cfg = _cfg(
        mock_config_dict,
        external=["left-pad"],
        packager_options={"scripts": ["echo ok", "tsc -p ."], "no_install": False, "ignore_lockfile": False},
    )

    with pytest.raises(SpawnError) as exc_info:
        asyncio.run(pack_external_modules(service, cfg, build_dir, packager))

    err = exc_info.value
    assert err.arguments == ["run", "script1"]
    assert err.exit_code == 2
    assert err.stdout == "building"
    assert err.stderr == "tsc: error TS2304"
    assert "tsc: error TS2304" in str(err)
    assert ("npm", ["run", "script0"], build_dir) in executor.calls
    assert ("npm", ["run", "script1"], build_dir) in executor.calls


def test_dev_dependency_fails_before_install(tmp_path, make_manifest, mock_config_dict, executor_factory):
    service_dir = tmp_path / "svc"
    make_manifest(str(service_dir / "package.json"), {
        "dependencies": {"left-pad": "^1.3.0"},
        "devDependencies": {"lodash": "^4.17.21"},
    })
    executor = executor_factory()
    packager = NpmPackager(executor=executor, platform="linux")
    service = ServiceDefinition(name="svc", service_dir=str(service_dir))

    with pytest.raises(DependencyResolutionError):
        asyncio.run(pack_external_modules(
            service, _cfg(mock_config_dict, external=["lodash"]), str(tmp_path / "build"), packager
        ))

    assert executor.calls == []
    assert not (tmp_path / "build" / "package.json").exists()


def test_wildcard_exclude_installs_nothing(npm_service, mock_config_dict, executor_factory):
    service, build_dir = npm_service
    executor = executor_factory()
    packager = NpmPackager(executor=executor, platform="linux")

    modules = asyncio.run(pack_external_modules(
        service, _cfg(mock_config_dict, external=["left-pad"], exclude=["*"]), build_dir, packager
    ))

    assert modules == []
    assert executor.calls == []


def test_google_provider_skips_install(npm_service, mock_config_dict, executor_factory):
    service, build_dir = npm_service
    service.provider = "google"
    executor = executor_factory()
    packager = NpmPackager(executor=executor, platform="linux")

    modules = asyncio.run(pack_external_modules(
        service, _cfg(mock_config_dict, external=["left-pad"]), build_dir, packager
    ))

    assert modules == ["left-pad@^1.3.0"]
    assert os.path.exists(os.path.join(build_dir, "package.json"))
    assert executor.calls == []


def test_missing_manifest_raises(tmp_path, mock_config_dict, executor_factory):
    service_dir = tmp_path / "svc"
    service_dir.mkdir()
    packager = NpmPackager(executor=executor_factory(), platform="linux")
    cfg = _cfg(mock_config_dict, external=["left-pad"], package_path="missing/package.json")
    service = ServiceDefinition(name="svc", service_dir=str(service_dir))

    with pytest.raises(ConfigurationError):
        asyncio.run(pack_external_modules(service, cfg, str(tmp_path / "build"), packager))


def test_workspace_package_manifest(tmp_path, make_manifest, make_file, mock_config_dict, executor_factory):
    make_manifest(str(tmp_path / "package.json"), {"name": "mono", "workspaces": ["packages/*"]})
    make_file(str(tmp_path / "yarn.lock"), '"shared@file:../shared":\n  version "1.0.0"\n')
    service_dir = tmp_path / "packages" / "svc"
    make_manifest(str(service_dir / "package.json"), {
        "name": "svc",
        "dependencies": {"left-pad": "^1.3.0"},
        "resolutions": {"left-pad": "1.3.0"},
    })
    build_dir = str(service_dir / ".esbuild" / ".build")
    executor = executor_factory({"-v": "1.22.19"})
    packager = YarnPackager(executor=executor, platform="linux")
    service = ServiceDefinition(name="svc", service_dir=str(service_dir))

    modules = asyncio.run(pack_external_modules(
        service, _cfg(mock_config_dict, packager="yarn", external=["left-pad"]), build_dir, packager
    ))

    assert modules == ["left-pad@^1.3.0"]
    with open(os.path.join(build_dir, "package.json"), encoding="utf-8") as f:
        composite = json.load(f)
    assert composite["resolutions"] == {"left-pad": "1.3.0"}
    assert os.path.exists(os.path.join(build_dir, "yarn.lock"))
    assert ("yarn", ["install", "--frozen-lockfile", "--non-interactive"], build_dir) in executor.calls
